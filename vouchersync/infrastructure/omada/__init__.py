"""Omada SDN controller Open API access."""

from .client import TOKEN_ERROR_CODES, AuthError, OmadaClient, Page, RemoteApiError
from .schemas import OmadaEnvelope, PageResult, RemoteVoucher, TokenResult, VoucherGroup
from .token import CachedToken, TokenManager

__all__ = [
    "AuthError",
    "CachedToken",
    "OmadaClient",
    "OmadaEnvelope",
    "Page",
    "PageResult",
    "RemoteApiError",
    "RemoteVoucher",
    "TOKEN_ERROR_CODES",
    "TokenManager",
    "TokenResult",
    "VoucherGroup",
]
