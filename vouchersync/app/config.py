"""Configuration utilities for vouchersync.

Configuration comes from an optional ``config.json`` at the repository root.
Every key has a default so the service runs without a config file. The
runtime environment (``production`` unless told otherwise) decides whether
TLS certificates of the Omada controller are verified.

Example ``config.json``::

    {
      "environment": "development",
      "paths": {"db_path": "data/vouchersync.db"},
      "sync": {"interval_seconds": 300, "default_currency": "BRL"},
      "omada": {"verify_tls": false, "voucher_page_size": 1000}
    }
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

ENV_VAR = "VOUCHERSYNC_ENV"
DEVELOPMENT_ENVIRONMENTS = frozenset({"development", "dev", "local", "test"})

_REPO_ROOT = Path(__file__).resolve().parents[2]
_CONFIG_FILE = _REPO_ROOT / "config.json"


def load_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Load ``config.json`` if present and return it as a dictionary."""

    path = Path(config_path) if config_path is not None else _CONFIG_FILE
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def resolve_environment(cfg: Dict[str, Any] | None = None) -> str:
    """Return the runtime environment name.

    ``VOUCHERSYNC_ENV`` wins over the ``environment`` config key; the
    fallback is ``production`` so strict TLS is the default.
    """

    from_env = os.environ.get(ENV_VAR)
    if from_env:
        return from_env.strip().lower()
    cfg = cfg if cfg is not None else load_config()
    value = cfg.get("environment") if isinstance(cfg, dict) else None
    return str(value).strip().lower() if value else "production"


def is_development_env(environment: str) -> bool:
    return environment in DEVELOPMENT_ENVIRONMENTS


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = cfg.get(name, {})
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class SyncSettings:
    """Runtime knobs for the reconciliation service."""

    environment: str = "production"
    sync_interval_seconds: float = 5 * 60
    group_page_size: int = 100
    voucher_page_size: int = 1000
    default_currency: str = "BRL"
    token_safety_margin_seconds: float = 30.0
    token_default_expires_in: int = 3600
    request_timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.5
    verify_tls: bool = True
    max_site_workers: int = 1

    @property
    def sync_interval_ms(self) -> int:
        return int(self.sync_interval_seconds * 1000)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None) -> "SyncSettings":
        """Build settings from a loaded config dictionary."""

        cfg = cfg if cfg is not None else load_config()
        environment = resolve_environment(cfg)
        sync_cfg = _section(cfg, "sync")
        omada_cfg = _section(cfg, "omada")

        verify_tls = omada_cfg.get("verify_tls")
        if verify_tls is None:
            verify_tls = not is_development_env(environment)

        return cls(
            environment=environment,
            sync_interval_seconds=float(
                sync_cfg.get("interval_seconds", cls.sync_interval_seconds)
            ),
            group_page_size=int(omada_cfg.get("group_page_size", cls.group_page_size)),
            voucher_page_size=int(
                omada_cfg.get("voucher_page_size", cls.voucher_page_size)
            ),
            default_currency=str(
                sync_cfg.get("default_currency", cls.default_currency)
            ),
            token_safety_margin_seconds=float(
                omada_cfg.get(
                    "token_safety_margin_seconds", cls.token_safety_margin_seconds
                )
            ),
            token_default_expires_in=int(
                omada_cfg.get("token_default_expires_in", cls.token_default_expires_in)
            ),
            request_timeout_seconds=float(
                omada_cfg.get("timeout_seconds", cls.request_timeout_seconds)
            ),
            retry_attempts=max(1, int(omada_cfg.get("retry_attempts", cls.retry_attempts))),
            retry_backoff_seconds=float(
                omada_cfg.get("retry_backoff_seconds", cls.retry_backoff_seconds)
            ),
            verify_tls=bool(verify_tls),
            max_site_workers=max(1, int(sync_cfg.get("max_site_workers", 1))),
        )


__all__ = [
    "DEVELOPMENT_ENVIRONMENTS",
    "ENV_VAR",
    "SyncSettings",
    "is_development_env",
    "load_config",
    "resolve_environment",
]
