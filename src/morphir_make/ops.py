"""Core operations for morphir-make."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
import json
import logging
import os
import tempfile

from .constants import DEFAULT_TARGET_VERSION
from .context import ProjectContext
from .core import (
    BuildArtifact,
    BuildMode,
    BuildOptions,
    BuildResult,
    GenerateOptions,
    ProjectManifest,
    ReconcileResult,
)
from .detection import detect_changes, to_content_hashes
from .engine import CompilationEngine, ProgressReporter
from .errors import HashStoreReadError, ManifestReadError
from .orchestrator import BuildOrchestrator
from .reconcile import copy_redistributables, reconcile

logger = logging.getLogger(__name__)


# ============= Atomic Write Helpers =============

def _atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to file with crash safety.

    1. Writes to temp file with fsync to ensure content is on disk
    2. Atomic rename to target path (appears all-at-once)

    Args:
        path: Target file path
        text: Text content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix=""
    ) as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        os.replace(tmp, path)
    except BaseException:
        # Clean up temp file on any error
        tmp.unlink(missing_ok=True)
        raise


# ============= File I/O =============

def load_manifest(ctx: Optional[ProjectContext] = None) -> ProjectManifest:
    """Load the project manifest (morphir.json)."""
    if ctx is None:
        ctx = ProjectContext()

    path = ctx.manifest_path
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ManifestReadError(path, "file not found") from e
    except (OSError, ValueError) as e:
        raise ManifestReadError(path, str(e)) from e

    if not isinstance(data, dict):
        raise ManifestReadError(path, "expected a JSON object")
    try:
        return ProjectManifest.model_validate(data)
    except ValueError as e:
        raise ManifestReadError(path, str(e)) from e


def load_content_hashes(path: Path) -> Dict[str, str]:
    """Read a hash store file.

    Returns an empty mapping if the file doesn't exist.

    Raises:
        HashStoreReadError: If the file exists but isn't a flat JSON object
            of strings
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise HashStoreReadError(path, str(e)) from e
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise HashStoreReadError(path, "expected a JSON object mapping paths to hashes")
    return data


def save_content_hashes(path: Path, hashes: Dict[str, str]) -> None:
    """Save the hash store atomically."""
    _atomic_write_text(path, json.dumps(dict(sorted(hashes.items())), indent=4))


def load_artifact(path: Path) -> BuildArtifact:
    """Load a JSON build artifact."""
    return json.loads(path.read_text(encoding="utf-8"))


def save_artifact(path: Path, artifact: BuildArtifact) -> None:
    """Save a build artifact atomically as indented JSON."""
    _atomic_write_text(path, json.dumps(artifact, indent=4))


def _load_prior_state(ctx: ProjectContext):
    """Return (prior_hashes, prior_artifact), or ({}, None) without usable state."""
    if not (ctx.ir_path.exists() and ctx.hashes_path.exists()):
        return {}, None

    try:
        hashes = load_content_hashes(ctx.hashes_path)
    except HashStoreReadError as e:
        logger.warning(f"{e}. Building from scratch.")
        return {}, None

    try:
        artifact = load_artifact(ctx.ir_path)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read existing IR at '{ctx.ir_path}': {e}. Building from scratch.")
        return {}, None

    if artifact is None:
        logger.warning(f"Existing IR at '{ctx.ir_path}' is empty. Building from scratch.")
        return {}, None

    return hashes, artifact


# ============= Make Operation =============

@dataclass
class MakeResult:
    """Result of a make operation."""

    build: BuildResult
    output_path: Path
    written: bool

    @property
    def mode(self) -> BuildMode:
        return self.build.mode


async def make(
    engine: CompilationEngine,
    ctx: Optional[ProjectContext] = None,
    output: Optional[Path] = None,
    options: Optional[BuildOptions] = None,
    progress: Optional[ProgressReporter] = None,
) -> MakeResult:
    """Build the project, incrementally when possible.

    Uses a two-phase commit for the hash store:

    1. Detect changes and compute the next hash store in memory
    2. Build; only after the artifact is written is the hash store saved

    Args:
        engine: Compilation engine to send requests to
        ctx: Project context (default: current directory)
        output: Where to write the artifact (default: morphir-ir.json in the project)
        options: Engine build options
        progress: Receives engine progress messages

    Returns:
        MakeResult describing what was built and written

    Raises:
        ManifestReadError, DetectionIOError, EngineError: The hash store and
            artifact are left untouched.
    """
    if ctx is None:
        ctx = ProjectContext()
    output = Path(output) if output is not None else ctx.ir_path
    config = ctx.get_config()

    manifest = load_manifest(ctx)
    source_root = ctx.source_root(manifest.source_directory)

    # Phase 1: detect and compute next state in memory
    prior_hashes, prior_artifact = _load_prior_state(ctx)
    change_set = await detect_changes(
        prior_hashes,
        source_root,
        ignore=config.ignore_spec(),
        max_concurrent=config.max_concurrent,
    )
    next_hashes = to_content_hashes(change_set)

    # Phase 2: build, then persist only on success
    orchestrator = BuildOrchestrator(engine, progress)
    result = await orchestrator.build(manifest, change_set, prior_artifact, options)

    # Hashes only describe the artifact stored in the project directory
    tracks_state = output.resolve() == ctx.ir_path.resolve()
    changed = result.mode != BuildMode.UP_TO_DATE

    written = False
    if changed or not tracks_state:
        logger.info(f"Writing file {output}.")
        save_artifact(output, result.artifact)
        written = True
    if changed and tracks_state:
        save_content_hashes(ctx.hashes_path, next_hashes)
    elif changed:
        logger.info(f"Output is outside {ctx.ir_path.name}; content hashes were not updated.")

    return MakeResult(build=result, output_path=output, written=written)


# ============= Generate Operation =============

async def gen(
    engine: CompilationEngine,
    input_path: Path,
    output_dir: Path,
    options: Optional[GenerateOptions] = None,
    target_version: Optional[str] = None,
    redistributable_dir: Optional[Path] = None,
    max_concurrent: Optional[int] = None,
    progress: Optional[ProgressReporter] = None,
) -> ReconcileResult:
    """Generate code from an IR file and reconcile it into output_dir.

    After reconciliation, redistributable support files are copied into
    output_dir when redistributable_dir is given. Those copies are not
    tracked as generated output.
    """
    options = options or GenerateOptions()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    ir = load_artifact(Path(input_path).resolve())
    files = await engine.submit_generate({"options": options.to_wire(), "ir": ir}, progress)
    logger.info(f"Engine generated {len(files)} files")

    kwargs = {"max_concurrent": max_concurrent} if max_concurrent else {}
    result = await reconcile(output_dir, files, **kwargs)

    if redistributable_dir is not None:
        result.copied = copy_redistributables(
            output_dir.resolve(),
            redistributable_dir,
            target_version or DEFAULT_TARGET_VERSION,
        )
    return result
