"""Tool configuration helpers."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import logging
import os
import shlex

import yaml

from .constants import CONFIG_FILE, DEFAULT_MAX_CONCURRENT, ENGINE_ENV_VAR
from .errors import ConfigError
from .ignore import IgnoreSpec

logger = logging.getLogger(__name__)


@dataclass
class MakeConfig:
    """Configuration read from morphir-make.yaml in the project directory."""

    engine_command: List[str] = field(default_factory=list)
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    ignore: List[str] = field(default_factory=list)
    redistributable_dir: Optional[Path] = None

    def ignore_spec(self) -> IgnoreSpec:
        return IgnoreSpec(self.ignore)

    def require_engine_command(self) -> List[str]:
        """Return the engine command or raise if none is configured."""
        if not self.engine_command:
            raise ConfigError(
                f"No compilation engine configured. Set engine.command in {CONFIG_FILE} "
                f"or the {ENGINE_ENV_VAR} environment variable."
            )
        return self.engine_command


def _as_command(value, cfg_path: Path) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(part) for part in value]
    raise ConfigError(f"engine.command in {cfg_path} must be a list or a string")


def _as_patterns(value, cfg_path: Path) -> List[str]:
    """A single string is one pattern, not a sequence of characters."""
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(p, str) for p in value):
        return list(value)
    raise ConfigError(f"ignore in {cfg_path} must be a list of patterns")


def load_make_config(root: Path) -> MakeConfig:
    """Load tool configuration from <root>/morphir-make.yaml if present.

    Missing or malformed files fall back to defaults. The engine command can
    always be overridden with the MORPHIR_MAKE_ENGINE environment variable.
    """
    cfg_path = root / CONFIG_FILE
    data = {}
    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text()) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Ignoring unreadable configuration {cfg_path}: {e}")
            data = {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring configuration {cfg_path}: expected a mapping")
            data = {}

    engine = data.get("engine") or {}
    command = _as_command(engine.get("command") if isinstance(engine, dict) else engine, cfg_path)
    env_command = os.environ.get(ENGINE_ENV_VAR)
    if env_command:
        command = shlex.split(env_command)

    redistributable_dir = data.get("redistributable_dir")
    if redistributable_dir:
        redistributable_dir = Path(redistributable_dir)
        if not redistributable_dir.is_absolute():
            redistributable_dir = root / redistributable_dir

    try:
        max_concurrent = int(data.get("max_concurrent", DEFAULT_MAX_CONCURRENT))
    except (TypeError, ValueError):
        raise ConfigError(f"max_concurrent in {cfg_path} must be an integer")
    if max_concurrent < 1:
        raise ConfigError(f"max_concurrent in {cfg_path} must be at least 1")

    return MakeConfig(
        engine_command=command,
        max_concurrent=max_concurrent,
        ignore=_as_patterns(data.get("ignore"), cfg_path),
        redistributable_dir=redistributable_dir or None,
    )
