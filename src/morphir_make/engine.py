"""Compilation engine interface and hosting.

The compilation engine is an external collaborator. It receives one request
message and answers on named ports:

- ``decodeFailed`` / ``jsonDecodeError``: the request was malformed
- ``buildFailed``: semantic or compile error
- ``reportProgress``: informational message (zero or more, ordered)
- ``buildCompleted``: ``[error, artifact]``
- ``generateResult``: ``[error, files]``

The first terminal signal resolves the request. Anything arriving after that
is ignored. ``PortChannel`` implements that rule independently of how the
engine is hosted; ``SubprocessEngine`` hosts it as a child process speaking
JSON lines.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence
import asyncio
import contextlib
import json
import logging

from .core import BuildArtifact, GeneratedFile
from .errors import EngineBuildError, EngineDecodeError, EngineError

logger = logging.getLogger(__name__)

# Outbound ports
PORT_BUILD_FROM_SCRATCH = "buildFromScratch"
PORT_BUILD_INCREMENTALLY = "buildIncrementally"
PORT_GENERATE = "generate"

# Inbound ports
PORT_DECODE_FAILED = "decodeFailed"
PORT_JSON_DECODE_ERROR = "jsonDecodeError"
PORT_BUILD_FAILED = "buildFailed"
PORT_REPORT_PROGRESS = "reportProgress"
PORT_BUILD_COMPLETED = "buildCompleted"
PORT_GENERATE_RESULT = "generateResult"

# Engine output lines can carry a whole IR
_STREAM_LIMIT = 256 * 1024 * 1024


class ProgressReporter(Protocol):
    """Progress reporting interface."""

    def on_progress(self, message: str) -> None:
        """Called for every progress message, in emission order."""
        ...


class CompilationEngine(Protocol):
    """Asynchronous request/response interface to the compilation engine."""

    async def submit_full_build(
        self,
        message: Dict[str, Any],
        progress: Optional[ProgressReporter] = None,
    ) -> BuildArtifact:
        """Send ``{options, packageInfo, fileSnapshot}`` and return the artifact."""
        ...

    async def submit_incremental_build(
        self,
        message: Dict[str, Any],
        progress: Optional[ProgressReporter] = None,
    ) -> BuildArtifact:
        """Send ``{options, packageInfo, fileChanges, distribution}`` and return the artifact."""
        ...

    async def submit_generate(
        self,
        message: Dict[str, Any],
        progress: Optional[ProgressReporter] = None,
    ) -> List[GeneratedFile]:
        """Send ``{options, ir}`` and return the generated files."""
        ...


class PortChannel:
    """Resolves a single engine request from inbound port signals.

    Usage:
        channel = PortChannel(PORT_BUILD_COMPLETED)
        channel.dispatch("reportProgress", "Parsing sources")
        channel.dispatch("buildCompleted", [None, artifact])
        artifact = await channel.wait()
    """

    def __init__(self, completion_port: str, progress: Optional[ProgressReporter] = None):
        self.completion_port = completion_port
        self.progress = progress
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._handlers: Dict[str, Callable[[Any], None]] = {
            PORT_DECODE_FAILED: self._on_decode_failed,
            PORT_JSON_DECODE_ERROR: self._on_decode_failed,
            PORT_BUILD_FAILED: self._on_build_failed,
            PORT_REPORT_PROGRESS: self._on_progress,
            completion_port: self._on_completed,
        }

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def dispatch(self, port: str, payload: Any) -> None:
        """Route one inbound signal."""
        if self.resolved:
            logger.debug(f"Ignoring '{port}' signal after request was resolved")
            return
        handler = self._handlers.get(port)
        if handler is None:
            logger.warning(f"Ignoring signal on unknown port '{port}'")
            return
        handler(payload)

    def fail(self, error: Exception) -> None:
        """Resolve with an error raised outside the port protocol."""
        if not self.resolved:
            self._future.set_exception(error)

    async def wait(self) -> Any:
        return await self._future

    def _on_decode_failed(self, payload: Any) -> None:
        self._future.set_exception(EngineDecodeError(payload))

    def _on_build_failed(self, payload: Any) -> None:
        self._future.set_exception(EngineBuildError(payload))

    def _on_progress(self, payload: Any) -> None:
        message = payload if isinstance(payload, str) else json.dumps(payload)
        logger.info(message)
        if self.progress is not None:
            self.progress.on_progress(message)

    def _on_completed(self, payload: Any) -> None:
        try:
            err, ok = payload
        except (TypeError, ValueError):
            self._future.set_exception(
                EngineError(f"Malformed '{self.completion_port}' payload: {payload!r}", payload)
            )
            return
        if err:
            self._future.set_exception(EngineBuildError(err))
        elif ok is None and self.completion_port == PORT_BUILD_COMPLETED:
            # A build that reports success must carry an artifact
            self._future.set_exception(
                EngineError(f"Engine completed '{self.completion_port}' without an artifact", payload)
            )
        else:
            self._future.set_result(ok)


def decode_generated_files(payload: Any) -> List[GeneratedFile]:
    """Decode ``[[dir_segments, file_name], content]`` items from the engine."""
    if payload is None:
        return []
    try:
        return [GeneratedFile.from_wire(item) for item in payload]
    except (TypeError, ValueError) as e:
        raise EngineError(f"Malformed generated file list: {e}", payload) from e


class SubprocessEngine:
    """Hosts the compilation engine as a child process speaking JSON lines.

    One process is launched per request. The request is written to stdin as
    ``{"port": <name>, "payload": <message>}`` and every stdout line of the same
    shape is dispatched to a ``PortChannel``. Once the request is resolved the
    process is terminated.
    """

    def __init__(self, command: Sequence[str]):
        if not command:
            raise ValueError("Engine command must not be empty")
        self.command = list(command)

    async def submit_full_build(self, message, progress=None):
        return await self._request(PORT_BUILD_FROM_SCRATCH, message, PORT_BUILD_COMPLETED, progress)

    async def submit_incremental_build(self, message, progress=None):
        return await self._request(PORT_BUILD_INCREMENTALLY, message, PORT_BUILD_COMPLETED, progress)

    async def submit_generate(self, message, progress=None):
        payload = await self._request(PORT_GENERATE, message, PORT_GENERATE_RESULT, progress)
        return decode_generated_files(payload)

    async def _request(
        self,
        port: str,
        message: Dict[str, Any],
        completion_port: str,
        progress: Optional[ProgressReporter],
    ) -> Any:
        channel = PortChannel(completion_port, progress)
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            raise EngineError(f"Could not start engine {self.command[0]!r}: {e}") from e

        logger.debug(f"Started engine process {proc.pid} for '{port}'")
        request = json.dumps({"port": port, "payload": message}) + "\n"
        writer = asyncio.create_task(self._send(proc, request.encode("utf-8")))
        stderr_reader = asyncio.create_task(proc.stderr.read())

        try:
            while not channel.resolved:
                line = await proc.stdout.readline()
                if not line:
                    break
                self._dispatch_line(channel, line)
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.terminate()
            await writer
            returncode = await proc.wait()
            stderr = (await stderr_reader).decode("utf-8", errors="replace").strip()

        if not channel.resolved:
            detail = f": {stderr}" if stderr else ""
            channel.fail(EngineError(
                f"Engine exited with code {returncode} before completing '{port}'{detail}"
            ))
        return await channel.wait()

    @staticmethod
    async def _send(proc, data: bytes) -> None:
        try:
            proc.stdin.write(data)
            await proc.stdin.drain()
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            # Engine exited early; its ports (or exit code) explain why
            logger.debug("Engine closed stdin before the request was fully written")

    @staticmethod
    def _dispatch_line(channel: PortChannel, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return
        try:
            signal = json.loads(text)
            port = signal["port"]
        except (ValueError, TypeError, KeyError):
            logger.warning(f"Ignoring malformed engine output: {text[:200]}")
            return
        channel.dispatch(port, signal.get("payload"))
