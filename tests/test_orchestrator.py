"""Tests for build mode selection and request construction."""

import pytest

from morphir_make.core import (
    BuildMode,
    BuildOptions,
    Delete,
    FileChangeSet,
    Insert,
    ProjectManifest,
    Unchanged,
    Update,
)
from morphir_make.errors import EngineBuildError, EngineDecodeError
from morphir_make.hashing import compute_content_digest
from morphir_make.orchestrator import BuildOrchestrator


def H(text: str) -> str:
    return compute_content_digest(text.encode("utf-8"))


@pytest.fixture
def manifest():
    return ProjectManifest.model_validate({
        "name": "Morphir.Example",
        "sourceDirectory": "src",
        "exposedModules": ["App"],
        "decorations": {"tags": "x"},
    })


@pytest.fixture
def inserts():
    return FileChangeSet(changes={
        "App.elm": Insert(content="app", hash=H("app")),
        "Rules.elm": Insert(content="rules", hash=H("rules")),
    })


@pytest.fixture
def mixed():
    return FileChangeSet(changes={
        "App.elm": Unchanged(hash=H("app")),
        "Rules.elm": Update(content="rules2", previous_hash=H("rules"), hash=H("rules2")),
        "Old.elm": Delete(previous_hash=H("old")),
    })


class TestFullBuild:
    """No prior artifact: send the complete snapshot."""

    @pytest.mark.asyncio
    async def test_full_build_message(self, fake_engine, manifest, inserts):
        engine = fake_engine(artifact={"ir": 1})

        result = await BuildOrchestrator(engine).build(
            manifest, inserts, options=BuildOptions(types_only=True)
        )

        assert result.mode == BuildMode.FULL
        assert result.artifact == {"ir": 1}
        assert result.invoked_engine
        kind, message = engine.calls[0]
        assert kind == "full"
        assert message == {
            "options": {"typesOnly": True},
            "packageInfo": {
                "name": "Morphir.Example",
                "sourceDirectory": "src",
                "exposedModules": ["App"],
                "decorations": {"tags": "x"},
            },
            "fileSnapshot": {"App.elm": "app", "Rules.elm": "rules"},
        }

    @pytest.mark.asyncio
    async def test_full_build_rejects_non_insert_entries(self, fake_engine, manifest, mixed):
        engine = fake_engine()

        with pytest.raises(ValueError, match="insert-only"):
            await BuildOrchestrator(engine).build(manifest, mixed)

        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_full_build_of_empty_tree(self, fake_engine, manifest):
        engine = fake_engine()

        result = await BuildOrchestrator(engine).build(manifest, FileChangeSet())

        assert result.mode == BuildMode.FULL
        assert engine.calls[0][1]["fileSnapshot"] == {}


class TestIncrementalBuild:
    """Prior artifact present: send deltas or skip the engine."""

    @pytest.mark.asyncio
    async def test_no_changes_short_circuits(self, fake_engine, manifest):
        engine = fake_engine()
        prior = {"previous": "ir"}
        unchanged = FileChangeSet(changes={"App.elm": Unchanged(hash=H("app"))})

        result = await BuildOrchestrator(engine).build(manifest, unchanged, prior)

        assert result.mode == BuildMode.UP_TO_DATE
        assert result.artifact is prior
        assert not result.invoked_engine
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_incremental_message(self, fake_engine, manifest, mixed):
        engine = fake_engine(artifact={"ir": 2})
        prior = {"ir": 1}

        result = await BuildOrchestrator(engine).build(manifest, mixed, prior)

        assert result.mode == BuildMode.INCREMENTAL
        assert result.artifact == {"ir": 2}
        assert (result.stats.updated, result.stats.deleted, result.stats.unchanged) == (1, 1, 1)
        kind, message = engine.calls[0]
        assert kind == "incremental"
        assert message["options"] == {"typesOnly": False}
        assert message["distribution"] is prior
        assert message["fileChanges"] == {
            "App.elm": ["Unchanged"],
            "Rules.elm": ["Update", "rules2"],
            "Old.elm": ["Delete"],
        }

    @pytest.mark.asyncio
    async def test_exactly_one_request(self, fake_engine, manifest, mixed):
        engine = fake_engine()
        await BuildOrchestrator(engine).build(manifest, mixed, {"ir": 1})
        assert len(engine.calls) == 1


class TestFailures:
    """Engine failures propagate unchanged."""

    @pytest.mark.asyncio
    async def test_build_error_propagates(self, failing_engine, manifest, inserts):
        with pytest.raises(EngineBuildError, match="type mismatch"):
            await BuildOrchestrator(failing_engine).build(manifest, inserts)

    @pytest.mark.asyncio
    async def test_decode_error_propagates(self, fake_engine, manifest, mixed):
        engine = fake_engine(error=EngineDecodeError("bad fileChanges"))
        with pytest.raises(EngineDecodeError):
            await BuildOrchestrator(engine).build(manifest, mixed, {"ir": 1})

    @pytest.mark.asyncio
    async def test_progress_forwarded(self, fake_engine, manifest, inserts, progress):
        engine = fake_engine(progress_messages=["Parsing", "Resolving", "Done"])

        await BuildOrchestrator(engine, progress).build(manifest, inserts)

        assert progress.messages == ["Parsing", "Resolving", "Done"]
