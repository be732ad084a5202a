from __future__ import annotations

import sqlite3

from ..connection import iso_utcnow
from .tables import ALL_TABLES_SQL, SCHEMA_VERSION_SQL

# Increment when making structural changes to the tables.
CURRENT_SCHEMA_VERSION = 1


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    conn.executescript(SCHEMA_VERSION_SQL)
    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    return row[0] if row else None


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create every table and index the service needs; safe to call repeatedly."""

    for script in ALL_TABLES_SQL:
        conn.executescript(script)
    current = get_schema_version(conn)
    if current is None or current < CURRENT_SCHEMA_VERSION:
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (CURRENT_SCHEMA_VERSION, iso_utcnow()),
        )
        conn.commit()
