from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from vouchersync.app.config import _CONFIG_FILE, load_config

DEFAULT_DB_TIMEOUT = 30.0


def get_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Return the loaded project configuration as a dictionary."""

    return load_config(config_path)


def get_path_config(config_path: Path | str | None = None) -> Dict[str, Path]:
    """Return resolved filesystem paths from the project configuration."""

    cfg = load_config(config_path)
    root = Path(config_path).parent if config_path is not None else _CONFIG_FILE.parent
    defaults = {"db_path": root / "vouchersync.db"}
    paths_cfg = cfg.get("paths", {}) if isinstance(cfg.get("paths", {}), dict) else {}
    resolved: Dict[str, Path] = {}
    for key, default_value in defaults.items():
        resolved_value = Path(paths_cfg.get(key, default_value))
        if not resolved_value.is_absolute():
            resolved_value = (root / resolved_value).resolve()
        resolved[key] = resolved_value
    return resolved


def get_default_timeout(config_path: Path | str | None = None) -> float:
    """Read the preferred database timeout from configuration."""

    cfg = load_config(config_path)
    try:
        return float(cfg.get("db_timeout_seconds", DEFAULT_DB_TIMEOUT))
    except (TypeError, ValueError):
        return DEFAULT_DB_TIMEOUT
