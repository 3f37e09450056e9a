"""Output reconciliation - converge a directory to a set of generated files."""

from pathlib import Path
from typing import Dict, Iterable, List, Set, Tuple
import asyncio
import logging
import os
import shutil

from .constants import DEFAULT_MAX_CONCURRENT, REDISTRIBUTABLE_COMMON, REDISTRIBUTABLE_VERSIONED
from .core import GeneratedFile, ReconcileResult
from .errors import ReconcileIOError

logger = logging.getLogger(__name__)


def _safe_target(root: Path, generated: GeneratedFile) -> Path:
    """Resolve a generated file under root.

    Raises:
        ValueError: If the path is absolute, uses parent traversal or escapes root
    """
    parts = [*generated.directory, generated.file_name]
    if not generated.file_name or not generated.file_name.strip():
        raise ValueError("Unsafe output path: empty file name")
    for part in parts:
        if part.startswith(("/", "\\")) or ".." in part.replace("\\", "/").split("/"):
            raise ValueError(f"Unsafe output path: {'/'.join(parts)}")

    target = root.joinpath(*parts).resolve()
    try:
        target.relative_to(root)
    except ValueError:
        raise ValueError(f"Output path escapes output root: {'/'.join(parts)}")
    return target


def _write(target: Path, content: str) -> str:
    """Write content, returning "insert" or "update"."""
    if target.exists():
        target.write_bytes(content.encode("utf-8"))
        return "update"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content.encode("utf-8"))
    return "insert"


def find_files_to_delete(root: Path, desired: Set[Path]) -> List[Path]:
    """Return regular files under root whose absolute path is not desired."""
    extras: List[Path] = []
    if not root.exists():
        return extras
    for dirpath, _, filenames in os.walk(root):
        d = Path(dirpath)
        for name in filenames:
            path = d / name
            if path.is_file() and path not in desired:
                extras.append(path)
    return sorted(extras)


def _sweep(root: Path, desired: Set[Path]) -> Tuple[List[str], List[Tuple[str, str]]]:
    """Delete every undesired file. Returns (deleted, failures)."""
    deleted: List[str] = []
    failures: List[Tuple[str, str]] = []
    for path in find_files_to_delete(root, desired):
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            failures.append((str(path), e.strerror or str(e)))
            continue
        logger.info(f"DELETE - {path}")
        deleted.append(str(path))
    return deleted, failures


async def reconcile(
    output_root: Path,
    desired: Iterable[GeneratedFile],
    *,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
) -> ReconcileResult:
    """
    Synchronize output_root so its files are exactly the desired ones.

    Existing files are overwritten unconditionally (update), missing ones are
    created with their parent directories (insert) and every other regular
    file under output_root is deleted. Empty directories are left in place.

    Writes run concurrently. The delete sweep starts once the complete set of
    desired paths is known and runs alongside the writes; it never touches a
    desired path.

    Args:
        output_root: Directory to converge (created if missing).
        desired: Generated files, relative to output_root.
        max_concurrent: Bound on concurrent writes.

    Returns:
        ReconcileResult with sorted absolute paths per operation.

    Raises:
        ReconcileIOError: If a desired path is unsafe (nothing is written), or
            after all operations settle if any write or delete failed. Files
            already written are not rolled back.
    """
    root = Path(output_root).resolve()

    targets: Dict[Path, GeneratedFile] = {}
    unsafe: List[Tuple[str, str]] = []
    for generated in desired:
        try:
            target = _safe_target(root, generated)
        except ValueError as e:
            unsafe.append(("/".join([*generated.directory, generated.file_name]), str(e)))
            continue
        if target in targets:
            logger.warning(f"Duplicate generated file {target}, keeping the last one")
        targets[target] = generated
    if unsafe:
        raise ReconcileIOError(unsafe)

    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ReconcileIOError([(str(root), e.strerror or str(e))]) from e

    loop = asyncio.get_running_loop()
    semaphore = asyncio.Semaphore(max_concurrent)
    desired_paths = set(targets)

    async def write_with_semaphore(target: Path, generated: GeneratedFile) -> str:
        async with semaphore:
            return await loop.run_in_executor(None, _write, target, generated.content)

    write_list = list(targets.items())
    results = await asyncio.gather(
        *(write_with_semaphore(target, generated) for target, generated in write_list),
        loop.run_in_executor(None, _sweep, root, desired_paths),
        return_exceptions=True,
    )

    result = ReconcileResult()
    failures: List[Tuple[str, str]] = []
    *write_results, sweep_result = results

    for (target, _), outcome in zip(write_list, write_results):
        if isinstance(outcome, OSError):
            failures.append((str(target), outcome.strerror or str(outcome)))
        elif isinstance(outcome, BaseException):
            raise outcome
        elif outcome == "insert":
            logger.info(f"INSERT - {target}")
            result.inserted.append(str(target))
        else:
            logger.info(f"UPDATE - {target}")
            result.updated.append(str(target))

    if isinstance(sweep_result, OSError):
        failures.append((str(root), sweep_result.strerror or str(sweep_result)))
    elif isinstance(sweep_result, BaseException):
        raise sweep_result
    else:
        deleted, sweep_failures = sweep_result
        result.deleted.extend(deleted)
        failures.extend(sweep_failures)

    result.inserted.sort()
    result.updated.sort()
    result.deleted.sort()

    if failures:
        raise ReconcileIOError(failures)
    return result


def copy_redistributables(output_root: Path, source_dir: Path, target_version: str) -> List[str]:
    """Copy redistributable support files into output_root.

    Copies ``Scala/sdk/src`` and ``Scala/sdk/src-<target_version>`` from
    source_dir, skipping whichever doesn't exist. The copied files are not
    part of the desired set, so a later ``reconcile`` deletes them again
    before they get re-copied.
    """
    copied: List[str] = []

    def _copy(src: str, dst: str) -> str:
        shutil.copy2(src, dst)
        logger.info(f"COPY - {dst}")
        copied.append(dst)
        return dst

    for rel in (REDISTRIBUTABLE_COMMON, REDISTRIBUTABLE_VERSIONED.format(version=target_version)):
        src = Path(source_dir) / rel
        if not src.is_dir():
            logger.debug(f"No redistributables at {src}")
            continue
        try:
            shutil.copytree(src, output_root, copy_function=_copy, dirs_exist_ok=True)
        except OSError as e:
            raise ReconcileIOError([(str(src), str(e))]) from e

    return sorted(copied)
