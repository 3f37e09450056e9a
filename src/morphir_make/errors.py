"""Custom exceptions for morphir-make.

This module defines typed exceptions for better error handling and clearer
error messages throughout the application.
"""

import json
from typing import Any, List, Tuple


class MakeError(RuntimeError):
    """Base class for all morphir-make errors."""
    pass


# Project File Errors
class ManifestReadError(MakeError):
    """Project manifest (morphir.json) is missing or malformed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not read project manifest at '{path}': {reason}")


class HashStoreReadError(MakeError):
    """Hash store file exists but cannot be decoded.

    Callers building a project treat this as "no prior state".
    """

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not read content hashes at '{path}': {reason}")


# Detection Errors
class DetectionIOError(MakeError):
    """A source file could not be read during change detection."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not read source file '{path}': {reason}")


# Engine Errors
class EngineError(MakeError):
    """Base class for errors reported by the compilation engine."""

    def __init__(self, message: str, payload: Any = None):
        self.payload = payload
        super().__init__(message)


def _describe(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, indent=2)
    except (TypeError, ValueError):
        return repr(payload)


class EngineDecodeError(EngineError):
    """The engine rejected the request as malformed."""

    def __init__(self, payload: Any):
        super().__init__(f"Engine could not decode request: {_describe(payload)}", payload)


class EngineBuildError(EngineError):
    """The engine reported a build or generation failure."""

    def __init__(self, payload: Any):
        super().__init__(f"Build failed: {_describe(payload)}", payload)


# Reconciliation Errors
class ReconcileIOError(MakeError):
    """One or more output files could not be written or deleted.

    Reconciliation is not transactional: operations that succeeded before or
    alongside the failures are not rolled back.
    """

    def __init__(self, failures: List[Tuple[str, str]]):
        self.failures = failures
        shown = "; ".join(f"{path}: {reason}" for path, reason in failures[:3])
        if len(failures) > 3:
            shown += f" and {len(failures) - 3} more"
        super().__init__(f"Failed to reconcile {len(failures)} output file(s): {shown}")


# Configuration Errors
class ConfigError(MakeError):
    """Tool configuration is missing a required value or is unusable."""
    pass
