"""Service layer modules for vouchersync."""

from .base import BaseService, ConnectionFactory, sqlite_connection_factory
from .cash_closure import CashClosureService
from .sync import *  # noqa: F401,F403
from .sync import __all__ as _sync_all

__all__ = [
    "BaseService",
    "CashClosureService",
    "ConnectionFactory",
    "sqlite_connection_factory",
    *_sync_all,
]
