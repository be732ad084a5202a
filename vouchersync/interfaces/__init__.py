"""Interface layer: boundary adapters such as the CLI."""

from . import cli

__all__ = ["cli"]
