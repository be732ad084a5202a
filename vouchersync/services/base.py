"""Base service class with shared connection handling.

Services receive a connection factory instead of a connection so that every
unit of work (one site pass, one closure) opens and closes its own sqlite
connection. That keeps them safe to run from worker threads and lets tests
point a service at a temporary database.
"""

from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Callable, TypeVar

from vouchersync.infrastructure.db import ensure_schema, get_connection
from vouchersync.infrastructure.observability import get_logger

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]
T = TypeVar("T")


def sqlite_connection_factory(db_path: str | Path | None = None) -> ConnectionFactory:
    """Return a factory opening fresh connections to ``db_path``."""

    def connection_factory() -> AbstractContextManager[sqlite3.Connection]:
        return get_connection(db_path)

    return connection_factory


class BaseService:
    """Base class for service layer implementations.

    Example usage:
        class MyService(BaseService):
            def count_sites(self) -> int:
                return self._with_connection(
                    lambda conn: conn.execute("SELECT COUNT(*) FROM sites").fetchone()[0]
                )

        service = MyService(sqlite_connection_factory("/path/to/db.sqlite"))
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory
        self._logger = get_logger(self.__class__.__module__)

    def _with_connection(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` on a fresh connection, creating the schema first."""
        with self._connection_factory() as conn:
            ensure_schema(conn)
            return fn(conn)
