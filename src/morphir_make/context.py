"""Project context for managing paths inside a Morphir project."""

from pathlib import Path
from typing import Optional, Union

from .config import MakeConfig, load_make_config
from .constants import HASHES_FILE, IR_FILE, MANIFEST_FILE


class ProjectContext:
    """Resolves the well-known files of a project directory."""

    def __init__(self, project_dir: Optional[Union[str, Path]] = None):
        """Initialize context for a project directory.

        Args:
            project_dir: Directory holding morphir.json (default: current directory)
        """
        self.root = Path(project_dir) if project_dir is not None else Path.cwd()
        self._config: Optional[MakeConfig] = None

    @property
    def manifest_path(self) -> Path:
        """Get path to the project manifest."""
        return self.root / MANIFEST_FILE

    @property
    def hashes_path(self) -> Path:
        """Get path to the content hash store."""
        return self.root / HASHES_FILE

    @property
    def ir_path(self) -> Path:
        """Get path to the prior build artifact."""
        return self.root / IR_FILE

    def source_root(self, source_directory: str) -> Path:
        """Get absolute source directory from the manifest's relative one."""
        return self.root / source_directory

    def get_config(self) -> MakeConfig:
        """Get the tool configuration (memoized)."""
        if self._config is None:
            self._config = load_make_config(self.root)
        return self._config
