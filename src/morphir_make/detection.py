"""Change detection - diff a source tree against the stored content hashes."""

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple
import asyncio
import logging
import os

from .constants import DEFAULT_MAX_CONCURRENT
from .core import (
    ChangeStats,
    Delete,
    FileChange,
    FileChangeSet,
    Insert,
    Unchanged,
    Update,
)
from .errors import DetectionIOError
from .hashing import compute_content_digest
from .ignore import IgnoreSpec

logger = logging.getLogger(__name__)


def list_source_files(source_root: Path, ignore: Optional[IgnoreSpec] = None) -> List[str]:
    """Recursively list regular files under source_root.

    Symlinks are not followed. Returned paths are POSIX strings relative to
    source_root, sorted.

    Raises:
        DetectionIOError: If the source root or a subdirectory cannot be listed
    """
    if not source_root.is_dir():
        raise DetectionIOError(source_root, "source directory does not exist")

    found: List[str] = []

    def _walk(current: Path, rel_dir: str) -> None:
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
        except OSError as e:
            raise DetectionIOError(current, e.strerror or str(e)) from e
        for entry in entries:
            rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            if entry.is_dir(follow_symlinks=False):
                if ignore and not ignore.should_traverse(rel):
                    continue
                _walk(Path(entry.path), rel)
            elif entry.is_file(follow_symlinks=False):
                if ignore and ignore.is_ignored(rel):
                    continue
                found.append(rel)

    _walk(source_root, "")
    return found


def _read_source(path: Path) -> Tuple[str, str]:
    """Read one source file and return (content, hash)."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DetectionIOError(path, e.strerror or str(e)) from e
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DetectionIOError(path, f"not valid UTF-8 ({e.reason})") from e
    return content, compute_content_digest(data)


async def detect_changes(
    prior_hashes: Mapping[str, str],
    source_root: Path,
    *,
    ignore: Optional[IgnoreSpec] = None,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
) -> FileChangeSet:
    """
    Classify every file under source_root against prior_hashes.

    Args:
        prior_hashes: Hash store from the last successful build (path -> hash).
            Pass an empty mapping to classify everything as an insert.
        source_root: Directory to scan recursively.
        ignore: Optional patterns excluding files from the scan.
        max_concurrent: Bound on files read at the same time.

    Returns:
        FileChangeSet holding each path of the tree or of prior_hashes exactly once.

    Raises:
        DetectionIOError: If any file cannot be read. Detection is all or
            nothing - no partial change set is returned.
    """
    loop = asyncio.get_running_loop()
    source_root = Path(source_root)
    paths = await loop.run_in_executor(None, list_source_files, source_root, ignore)

    semaphore = asyncio.Semaphore(max_concurrent)

    async def read_with_semaphore(rel: str) -> Tuple[str, str]:
        async with semaphore:
            return await loop.run_in_executor(None, _read_source, source_root / rel)

    # Without return_exceptions the first failure propagates
    results = await asyncio.gather(*(read_with_semaphore(rel) for rel in paths))

    changes: Dict[str, FileChange] = {}
    for rel, (content, digest) in zip(paths, results):
        previous = prior_hashes.get(rel)
        if previous is None:
            changes[rel] = Insert(content=content, hash=digest)
        elif previous != digest:
            changes[rel] = Update(content=content, previous_hash=previous, hash=digest)
        else:
            changes[rel] = Unchanged(hash=digest)

    # Anything we knew about but didn't find was deleted
    for rel in sorted(set(prior_hashes) - set(changes)):
        changes[rel] = Delete(previous_hash=prior_hashes[rel])

    logger.debug(f"Detected changes for {len(changes)} paths under {source_root}")
    return FileChangeSet(changes=changes)


def to_stats(change_set: FileChangeSet) -> ChangeStats:
    """Count each kind of change in one pass."""
    stats = ChangeStats()
    for change in change_set.changes.values():
        if isinstance(change, Insert):
            stats.inserted += 1
        elif isinstance(change, Update):
            stats.updated += 1
        elif isinstance(change, Delete):
            stats.deleted += 1
        elif isinstance(change, Unchanged):
            stats.unchanged += 1
        else:
            raise TypeError(f"Unknown file change: {change!r}")
    return stats


def has_changes(stats: ChangeStats) -> bool:
    """True iff anything was inserted, updated or deleted."""
    return stats.has_changes


def to_content_hashes(change_set: FileChangeSet) -> Dict[str, str]:
    """Project the change set to the next hash store.

    Deleted paths vanish, every other path maps to its current hash.
    """
    hashes: Dict[str, str] = {}
    for path, change in change_set.changes.items():
        if isinstance(change, Delete):
            continue
        hashes[path] = change.hash
    return hashes


def to_file_snapshot(change_set: FileChangeSet) -> Dict[str, str]:
    """Project every insert to path -> content for a full build."""
    return {
        path: change.content
        for path, change in change_set.changes.items()
        if isinstance(change, Insert)
    }


def to_file_changes_json(change_set: FileChangeSet) -> Dict[str, list]:
    """Serialize the change set for an incremental build request.

    Each entry is tagged with its variant, followed by the content where
    applicable: ``["Insert", content]``, ``["Update", content]``,
    ``["Delete"]`` or ``["Unchanged"]``.
    """
    wire: Dict[str, list] = {}
    for path, change in change_set.changes.items():
        if isinstance(change, Insert):
            wire[path] = ["Insert", change.content]
        elif isinstance(change, Update):
            wire[path] = ["Update", change.content]
        elif isinstance(change, Delete):
            wire[path] = ["Delete"]
        elif isinstance(change, Unchanged):
            wire[path] = ["Unchanged"]
        else:
            raise TypeError(f"Unknown file change: {change!r}")
    return wire
