"""Shared helpers for composing CLI command contexts.

Resolves the database path and sync settings once per command group and
builds services wired to them.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, TypeVar

import click

from vouchersync.app.config import SyncSettings, load_config
from vouchersync.infrastructure.db import ensure_schema, get_connection, get_path_config
from vouchersync.infrastructure.db.repositories.base import BaseRepository
from vouchersync.infrastructure.omada import OmadaClient
from vouchersync.services import (
    CashClosureService,
    ConnectionFactory,
    VoucherSyncService,
)

RepositoryT = TypeVar("RepositoryT", bound=BaseRepository)


@dataclass(frozen=True)
class CLIContext:
    """Container for CLI dependencies and configuration."""

    db_path: Path
    settings: SyncSettings
    connection_factory: ConnectionFactory

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a configured SQLite connection and ensure the schema exists."""

        with self.connection_factory() as connection:
            ensure_schema(connection)
            yield connection

    @contextmanager
    def repository(self, repository_cls: type[RepositoryT]) -> Iterator[RepositoryT]:
        with self.connect() as connection:
            yield repository_cls(connection)

    def omada_client(self) -> OmadaClient:
        return OmadaClient.from_settings(self.settings)

    def sync_service(self) -> VoucherSyncService:
        return VoucherSyncService(
            self.connection_factory, self.omada_client(), settings=self.settings
        )

    def cash_closure_service(self) -> CashClosureService:
        return CashClosureService(
            self.connection_factory, self.omada_client(), settings=self.settings
        )


def build_cli_context(
    db_path: str | Path | None = None,
    config_path: str | Path | None = None,
) -> CLIContext:
    """Build the CLI context with resolved paths, settings and connection factory."""

    settings = SyncSettings.from_config(load_config(config_path))
    resolved_db_path = (
        Path(db_path).expanduser()
        if db_path is not None
        else get_path_config(config_path)["db_path"]
    )

    def connection_factory():
        return get_connection(resolved_db_path)

    return CLIContext(
        db_path=resolved_db_path,
        settings=settings,
        connection_factory=connection_factory,
    )


def db_option(func):
    """``--db`` option shared by every command group."""
    return click.option(
        "--db",
        "db_path",
        default=None,
        show_default="vouchersync.db",
        help="Path to the SQLite database.",
    )(func)


def store_cli_context(ctx: click.Context, db_path: str | None) -> CLIContext:
    """Build the context for a command group and stash it on ``ctx.obj``."""

    ctx.ensure_object(dict)
    cli_context = build_cli_context(db_path, ctx.obj.get("config_path"))
    ctx.obj["cli_context"] = cli_context
    return cli_context
