"""Core data models for morphir-make.

Two-Phase Commit for Content Hashes:
------------------------------------
The hash store must always describe the sources of the last artifact that was
actually produced. We never write it speculatively:

1. Detect Phase: Diff the source tree against the stored hashes and compute
   the next hash store in memory
2. Commit Phase: Only after the engine returns an artifact (and it has been
   written) is the new hash store persisted

If the build fails, the old hashes stay on disk and the next run computes the
same deltas again.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============= Project =============

class ProjectManifest(BaseModel):
    """Project manifest (stored in morphir.json).

    Unknown keys are preserved so the engine receives the manifest as written.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    source_directory: str = Field(alias="sourceDirectory")
    exposed_modules: List[str] = Field(default_factory=list, alias="exposedModules")

    def to_package_info(self) -> Dict[str, Any]:
        """Serialize with the original camelCase keys for the engine."""
        return self.model_dump(by_alias=True)


class BuildOptions(BaseModel):
    """Options forwarded to the engine for make requests."""

    types_only: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return {"typesOnly": self.types_only}


class GenerateOptions(BaseModel):
    """Options forwarded to the engine for generate requests."""

    limit_to_modules: Optional[List[str]] = None

    @classmethod
    def from_module_filter(cls, modules: Optional[str]) -> "GenerateOptions":
        """Parse a comma separated module filter (empty means no limit)."""
        if not modules:
            return cls()
        return cls(limit_to_modules=[m.strip() for m in modules.split(",") if m.strip()])

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {}
        if self.limit_to_modules is not None:
            wire["limitToModules"] = self.limit_to_modules
        return wire


# ============= Change Detection =============

class Insert(BaseModel):
    """Path present now, absent from the hash store."""

    kind: Literal["insert"] = "insert"
    content: str
    hash: str


class Update(BaseModel):
    """Path present in both, content hash differs."""

    kind: Literal["update"] = "update"
    content: str
    previous_hash: str
    hash: str


class Delete(BaseModel):
    """Path in the hash store, absent now."""

    kind: Literal["delete"] = "delete"
    previous_hash: str


class Unchanged(BaseModel):
    """Path in both with an identical hash."""

    kind: Literal["unchanged"] = "unchanged"
    hash: str


FileChange = Annotated[Union[Insert, Update, Delete, Unchanged], Field(discriminator="kind")]


class FileChangeSet(BaseModel):
    """Classification of every known path relative to the prior hashes.

    Every path that exists in the current tree or in the prior hash store
    appears exactly once. Paths are POSIX strings relative to the source root.
    """

    changes: Dict[str, FileChange] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.changes)

    def __contains__(self, path: str) -> bool:
        return path in self.changes

    def __getitem__(self, path: str) -> FileChange:
        return self.changes[path]

    def items(self):
        return self.changes.items()


@dataclass(slots=True)
class ChangeStats:
    """Counts of each change kind, used for reporting."""

    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        """Check if anything was inserted, updated or deleted."""
        return (self.inserted + self.updated + self.deleted) > 0

    def summary(self) -> str:
        """Get human-readable summary."""
        return (
            f"inserted: {self.inserted}, updated: {self.updated}, "
            f"deleted: {self.deleted}, unchanged: {self.unchanged}"
        )


# ============= Build =============

BuildArtifact = Any


class BuildMode(str, Enum):
    """How a build request was resolved."""

    FULL = "full"
    INCREMENTAL = "incremental"
    UP_TO_DATE = "up_to_date"


@dataclass
class BuildResult:
    """Result of a build invocation.

    In UP_TO_DATE mode ``artifact`` is the prior artifact object itself.
    """

    mode: BuildMode
    artifact: BuildArtifact
    stats: ChangeStats

    @property
    def invoked_engine(self) -> bool:
        return self.mode != BuildMode.UP_TO_DATE


# ============= Generation =============

class GeneratedFile(BaseModel):
    """One output artifact relative to an output root."""

    directory: List[str] = Field(default_factory=list)
    file_name: str
    content: str

    @classmethod
    def from_wire(cls, item: Any) -> "GeneratedFile":
        """Decode the engine's ``[[dir_segments, file_name], content]`` shape."""
        (directory, file_name), content = item
        return cls(directory=list(directory), file_name=file_name, content=content)


@dataclass
class ReconcileResult:
    """Result of reconciling an output directory."""

    inserted: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    copied: List[str] = field(default_factory=list)

    def summary(self) -> str:
        """Get human-readable summary."""
        parts = [
            f"{len(self.inserted)} inserted",
            f"{len(self.updated)} updated",
            f"{len(self.deleted)} deleted",
        ]
        if self.copied:
            parts.append(f"{len(self.copied)} copied")
        return ", ".join(parts)
