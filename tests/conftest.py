"""Shared test fixtures and utilities."""

import json
import sys
import textwrap
import pytest

from morphir_make.core import GeneratedFile
from morphir_make.errors import EngineBuildError


class FakeEngine:
    """In-memory compilation engine recording every request."""

    def __init__(self, artifact=None, error=None, generated=None, progress_messages=()):
        self.artifact = artifact if artifact is not None else {"ir": "built"}
        self.error = error
        self.generated = generated or []
        self.progress_messages = list(progress_messages)
        self.calls = []

    async def _respond(self, kind, message, progress, result):
        self.calls.append((kind, message))
        for msg in self.progress_messages:
            if progress is not None:
                progress.on_progress(msg)
        if self.error is not None:
            raise self.error
        return result

    async def submit_full_build(self, message, progress=None):
        return await self._respond("full", message, progress, self.artifact)

    async def submit_incremental_build(self, message, progress=None):
        return await self._respond("incremental", message, progress, self.artifact)

    async def submit_generate(self, message, progress=None):
        return await self._respond("generate", message, progress, self.generated)


class RecordingProgress:
    """ProgressReporter collecting messages."""

    def __init__(self):
        self.messages = []

    def on_progress(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def fake_engine():
    """Factory fixture creating a FakeEngine."""
    def _make(**kwargs):
        return FakeEngine(**kwargs)
    return _make


@pytest.fixture
def failing_engine():
    """Engine that fails every build with a compile error."""
    return FakeEngine(error=EngineBuildError({"errors": ["type mismatch"]}))


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: str = "test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def project(tmp_path):
    """Create a Morphir project with a manifest and two source files."""
    root = tmp_path / "project"
    src = root / "src" / "Morphir" / "Example"
    src.mkdir(parents=True)
    (root / "morphir.json").write_text(json.dumps({
        "name": "Morphir.Example",
        "sourceDirectory": "src",
        "exposedModules": ["App"],
    }))
    (src / "App.elm").write_text("module Morphir.Example.App exposing (..)\n")
    (src / "Rules.elm").write_text("module Morphir.Example.Rules exposing (..)\n")
    return root


@pytest.fixture
def generated():
    """Factory for GeneratedFile instances from 'dir/sub/File.ext' strings."""
    def _make(path: str, content: str = "generated"):
        *directory, file_name = path.split("/")
        return GeneratedFile(directory=directory, file_name=file_name, content=content)
    return _make


@pytest.fixture
def engine_script(tmp_path):
    """Write a Python script acting as an engine and return its command.

    The body runs after ``request`` (the decoded request line) and
    ``emit(port, payload)`` are defined.
    """
    def _make(body: str):
        script = tmp_path / "engine.py"
        script.write_text(
            "import json, sys\n"
            "request = json.loads(sys.stdin.readline())\n"
            "def emit(port, payload):\n"
            "    print(json.dumps({'port': port, 'payload': payload}), flush=True)\n"
            + textwrap.dedent(body)
        )
        return [sys.executable, str(script)]
    return _make
