"""Application-level wiring: configuration loading and runtime settings."""

from .config import SyncSettings, is_development_env, load_config, resolve_environment

__all__ = ["SyncSettings", "is_development_env", "load_config", "resolve_environment"]
