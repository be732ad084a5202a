"""Voucher status sync against the Omada controller.

Public API:
  - VoucherSyncService – sweep orchestration and auto-sync lifecycle
  - ReconciliationEngine – per-voucher state machine and sale creation
  - VoucherGroupEnumerator / VoucherDetailFetcher – paginated listings
"""

from .pagination import (
    GROUP_PAGE_SIZE,
    VOUCHER_PAGE_SIZE,
    GroupDetail,
    PagedListing,
    VoucherDetailFetcher,
    VoucherGroupEnumerator,
)
from .reconcile import (
    ReconcileOutcome,
    ReconcileResult,
    ReconciliationEngine,
    remote_start_time,
)
from .service import (
    CredentialsMissingError,
    GroupSyncStats,
    SiteNotFoundError,
    SiteSyncResult,
    SweepResult,
    VoucherSyncService,
)

__all__ = [
    # === Pagination
    "GROUP_PAGE_SIZE",
    "GroupDetail",
    "PagedListing",
    "VOUCHER_PAGE_SIZE",
    "VoucherDetailFetcher",
    "VoucherGroupEnumerator",
    # === Reconciliation
    "ReconcileOutcome",
    "ReconcileResult",
    "ReconciliationEngine",
    "remote_start_time",
    # === Orchestration
    "CredentialsMissingError",
    "GroupSyncStats",
    "SiteNotFoundError",
    "SiteSyncResult",
    "SweepResult",
    "VoucherSyncService",
]
