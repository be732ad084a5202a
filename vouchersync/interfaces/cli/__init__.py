"""Click commands for vouchersync."""

from .__main__ import cli
from .cash import cash
from .sales import sales
from .sync import sync

__all__ = ["cash", "cli", "sales", "sync"]
