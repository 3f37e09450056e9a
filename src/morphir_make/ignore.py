"""Gitignore-style pattern matching for change detection."""

from typing import Iterable

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern


class IgnoreSpec:
    """Manages gitignore-style patterns for excluding source files.

    Nothing is ignored by default; patterns come from the ``ignore`` key of
    the tool configuration.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        """Initialize ignore spec.

        Args:
            patterns: Gitignore-style patterns; blank lines and comments are skipped
        """
        self.patterns = [
            p.strip() for p in patterns
            if p.strip() and not p.strip().startswith("#")
        ]
        # Compile patterns once for efficiency
        self.spec = PathSpec.from_lines(GitWildMatchPattern, self.patterns)

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def is_ignored(self, relpath: str) -> bool:
        """Check if a source-relative POSIX path should be ignored."""
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be traversed during scanning.

        Args:
            dirpath: Source-relative directory path in POSIX format

        Returns:
            True if the directory should be traversed
        """
        # Add trailing slash to match directory patterns
        if not dirpath.endswith("/"):
            dirpath = dirpath + "/"
        return not self.spec.match_file(dirpath)
