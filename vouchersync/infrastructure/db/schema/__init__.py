from .manager import CURRENT_SCHEMA_VERSION, ensure_schema, get_schema_version

__all__ = ["CURRENT_SCHEMA_VERSION", "ensure_schema", "get_schema_version"]
