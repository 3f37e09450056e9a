"""Change detection and build reconciliation for Morphir projects."""

from .constants import MAKE_VERSION

__version__ = MAKE_VERSION
