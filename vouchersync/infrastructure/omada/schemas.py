"""Response schemas for the Omada Open API endpoints used by the sync.

Every payload is parsed through these models right after it leaves the HTTP
layer, so the rest of the code never touches raw dictionaries or raw status
integers. Required fields are required: a voucher without a code is a
malformed response, not something to paper over.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vouchersync.domain.models import RemoteVoucherStatus
from vouchersync.domain.models.voucher import parse_decimal


class _OmadaModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _to_str(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class OmadaEnvelope(_OmadaModel):
    """Outer ``{errorCode, msg, result}`` wrapper shared by all endpoints."""

    error_code: int = Field(alias="errorCode")
    msg: str | None = None
    result: Any = None


class TokenResult(_OmadaModel):
    access_token: str = Field(alias="accessToken", min_length=1)
    expires_in: int | None = Field(default=None, alias="expiresIn")


class PageResult(_OmadaModel):
    """Paginated ``result`` body; extra keys carry group metadata on detail pages."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    total_rows: int = Field(alias="totalRows")
    current_page: int = Field(alias="currentPage")
    current_size: int = Field(alias="currentSize")
    data: list[dict[str, Any]] = Field(default_factory=list)

    def metadata(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class VoucherGroup(_OmadaModel):
    """A batch of vouchers as listed by the controller."""

    id: str
    name: str = ""
    unit_price: Decimal | None = Field(default=None, alias="unitPrice")
    currency: str | None = None
    unused_count: int = Field(default=0, alias="unusedCount")
    used_count: int = Field(default=0, alias="usedCount")
    in_use_count: int = Field(default=0, alias="inUseCount")
    expired_count: int = Field(default=0, alias="expiredCount")
    total_count: int = Field(default=0, alias="totalCount")
    total_amount: Decimal | None = Field(default=None, alias="totalAmount")

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        return _to_str(value)

    @field_validator("unit_price", "total_amount", mode="before")
    @classmethod
    def parse_amount(cls, value: Any) -> Decimal | None:
        return parse_decimal(value)

    @field_validator("currency", mode="before")
    @classmethod
    def blank_currency(cls, value: Any) -> Any:
        return value or None

    def merged_with(self, other: "VoucherGroup | None") -> "VoucherGroup":
        """Fill price and currency gaps from another view of the same group."""
        if other is None:
            return self
        return self.model_copy(
            update={
                "unit_price": self.unit_price if self.unit_price is not None else other.unit_price,
                "currency": self.currency or other.currency,
                "name": self.name or other.name,
            }
        )


class RemoteVoucher(_OmadaModel):
    """A single voucher inside a group detail page."""

    id: str
    code: str = Field(min_length=1)
    status: RemoteVoucherStatus
    start_time: int | None = Field(default=None, alias="startTime")
    time_used_sec: int | None = Field(default=None, alias="timeUsedSec")
    time_left_sec: int | None = Field(default=None, alias="timeLeftSec")

    @field_validator("id", "code", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any) -> Any:
        return _to_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, value: Any) -> RemoteVoucherStatus:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValueError(f"invalid voucher status {value!r}")
        return RemoteVoucherStatus(int(value))


__all__ = [
    "OmadaEnvelope",
    "PageResult",
    "RemoteVoucher",
    "TokenResult",
    "VoucherGroup",
]
