from .cash_closures import CashClosure, CashClosureRepository
from .credentials import CredentialsRepository
from .sales import DuplicateSaleAttempt, SaleRepository
from .sites import SiteRepository
from .sync_runs import SyncRunRepository
from .vouchers import StatusRegressionError, VoucherRepository

__all__ = [
    "CashClosure",
    "CashClosureRepository",
    "CredentialsRepository",
    "DuplicateSaleAttempt",
    "SaleRepository",
    "SiteRepository",
    "StatusRegressionError",
    "SyncRunRepository",
    "VoucherRepository",
]
