"""Domain models package."""

from .sale import PAYMENT_METHOD_AUTO_SYNC, PAYMENT_METHOD_MANUAL, NewSale, Sale
from .site import SITE_STATUS_ACTIVE, OmadaCredentials, Site
from .voucher import LocalVoucher, LocalVoucherStatus, RemoteVoucherStatus

__all__ = [
    "LocalVoucher",
    "LocalVoucherStatus",
    "NewSale",
    "OmadaCredentials",
    "PAYMENT_METHOD_AUTO_SYNC",
    "PAYMENT_METHOD_MANUAL",
    "RemoteVoucherStatus",
    "SITE_STATUS_ACTIVE",
    "Sale",
    "Site",
]
