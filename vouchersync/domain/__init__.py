"""Domain layer for vouchersync.

Pure business types shared by the persistence layer and the sync services:
voucher status enums and their ordering, and the local records the
reconciliation engine reads and writes.
"""

from . import models

__all__ = ["models"]
