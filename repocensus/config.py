"""Configuration loading for repocensus (.repocensus.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".repocensus.yml"

FORK_MODE_SWEEP = "sweep"
FORK_MODE_EAGER = "eager"
FORK_MODES = (FORK_MODE_SWEEP, FORK_MODE_EAGER)

DEFAULT_OUTPUT = "result.csv"
DEFAULT_HOSTING_MARKER = "github.com"


def default_workers() -> int:
    return os.cpu_count() or 1


@dataclass
class StorageConfig:
    """Where storage roots and the repository catalog live."""

    path: Path = field(default_factory=lambda: Path("storage"))
    catalog: Path = field(default_factory=lambda: Path("repositories.json"))
    scratch_dir: Optional[Path] = None


@dataclass
class CensusConfig:
    """Represents the settings defined in .repocensus.yml."""

    root: Path
    storage: StorageConfig = field(default_factory=StorageConfig)
    output: Path = field(default_factory=lambda: Path(DEFAULT_OUTPUT))
    workers: int = field(default_factory=default_workers)
    fork_mode: str = FORK_MODE_SWEEP
    hosting_marker: str = DEFAULT_HOSTING_MARKER
    limit: Optional[int] = None
    offset: Optional[int] = None

    def with_overrides(self, **overrides: Any) -> "CensusConfig":
        """Return a copy with every non-None override applied and validated."""
        values = {key: value for key, value in overrides.items() if value is not None}
        storage_values = {
            key: values.pop(key)
            for key in ("path", "catalog", "scratch_dir")
            if key in values
        }
        config = replace(self, **values)
        if storage_values:
            config.storage = replace(self.storage, **storage_values)
        _validate(config)
        return config


def load_config(config_path: Path) -> CensusConfig:
    """Load configuration from disk, falling back to defaults when missing."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return CensusConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    config = CensusConfig(root=root)

    storage_data = _as_dict(data.get("storage"))
    if storage_data:
        path = _as_str(storage_data.get("path"))
        catalog = _as_str(storage_data.get("catalog"))
        scratch = _as_str(storage_data.get("scratch_dir"))
        if path:
            config.storage.path = root / path
        if catalog:
            config.storage.catalog = root / catalog
        if scratch:
            config.storage.scratch_dir = root / scratch

    output = _as_str(data.get("output"))
    if output:
        config.output = root / output

    workers = _int_setting(data, "workers")
    if workers is not None:
        config.workers = workers

    fork_mode = _as_str(data.get("fork_mode"))
    if fork_mode:
        config.fork_mode = fork_mode.strip().lower()

    marker = _as_str(data.get("hosting_marker"))
    if marker:
        config.hosting_marker = marker

    config.limit = _int_setting(data, "limit")
    config.offset = _int_setting(data, "offset")

    _validate(config)
    return config


def _validate(config: CensusConfig) -> None:
    if config.workers < 1:
        raise ConfigError(f"workers must be at least 1, got {config.workers}")
    if config.fork_mode not in FORK_MODES:
        raise ConfigError(
            f"fork_mode must be one of {', '.join(FORK_MODES)}, got {config.fork_mode!r}"
        )
    if config.limit is not None and config.limit < 0:
        raise ConfigError("limit cannot be negative")
    if config.offset is not None and config.offset < 0:
        raise ConfigError("offset cannot be negative")


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _int_setting(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    parsed = _as_int(value)
    if parsed is None:
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return parsed


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


__all__ = [
    "CONFIG_FILENAME",
    "CensusConfig",
    "ConfigError",
    "FORK_MODES",
    "FORK_MODE_EAGER",
    "FORK_MODE_SWEEP",
    "StorageConfig",
    "load_config",
]
