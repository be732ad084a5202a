"""
Vouchersync package initializer.

This package keeps local hotspot voucher records in step with an Omada SDN
controller: it polls the controller's voucher groups, moves local voucher
status forward and records a sale the first time a voucher is seen in use.

The package exposes a ``__version__`` attribute indicating the installed
version. The version is read from pyproject.toml via importlib.metadata –
this is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vouchersync")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
