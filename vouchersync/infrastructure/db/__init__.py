from .config import DEFAULT_DB_TIMEOUT, get_config, get_default_timeout, get_path_config
from .connection import DatabaseError, apply_pragmas, get_connection, iso_utcnow, to_iso
from .schema import CURRENT_SCHEMA_VERSION, ensure_schema

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_DB_TIMEOUT",
    "DatabaseError",
    "apply_pragmas",
    "ensure_schema",
    "get_config",
    "get_connection",
    "get_default_timeout",
    "get_path_config",
    "iso_utcnow",
    "to_iso",
]
