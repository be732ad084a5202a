"""Voucher domain model and status vocabulary."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum, IntEnum


class RemoteVoucherStatus(IntEnum):
    """Status codes reported by the Omada controller for a single voucher."""

    UNUSED = 0
    IN_USE = 1
    EXPIRED = 2
    UNKNOWN = -1

    @classmethod
    def _missing_(cls, value: object) -> "RemoteVoucherStatus":
        return cls.UNKNOWN


class LocalVoucherStatus(str, Enum):
    """Status of a voucher as stored locally."""

    AVAILABLE = "available"
    IN_USE = "in_use"
    EXPIRED = "expired"

    @property
    def is_consumed(self) -> bool:
        """A consumed voucher has been sold and can never be available again."""
        return self is not LocalVoucherStatus.AVAILABLE

    @classmethod
    def from_remote(
        cls, status: RemoteVoucherStatus
    ) -> "LocalVoucherStatus | None":
        """Project a remote status onto the local vocabulary.

        Returns None for codes the controller may add in the future.
        """
        return _REMOTE_TO_LOCAL.get(status)

    @classmethod
    def from_string(cls, value: str | None) -> "LocalVoucherStatus":
        """Parse a stored value; legacy ``used`` rows count as expired."""
        if not value:
            return cls.AVAILABLE
        normalized = value.strip().lower()
        if normalized == "used":
            return cls.EXPIRED
        return cls(normalized)


_REMOTE_TO_LOCAL = {
    RemoteVoucherStatus.UNUSED: LocalVoucherStatus.AVAILABLE,
    RemoteVoucherStatus.IN_USE: LocalVoucherStatus.IN_USE,
    RemoteVoucherStatus.EXPIRED: LocalVoucherStatus.EXPIRED,
}


def parse_decimal(value: object) -> Decimal | None:
    """Parse a price field; blanks and garbage become None."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_timestamp(value: object) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


@dataclass
class LocalVoucher:
    """A voucher row as the reconciliation engine sees it."""

    id: str
    code: str
    site_id: str
    status: LocalVoucherStatus = LocalVoucherStatus.AVAILABLE
    plan_id: str | None = None
    seller_id: str | None = None
    created_by: str | None = None
    omada_group_id: str | None = None
    omada_voucher_id: str | None = None
    unit_price: Decimal | None = None
    used_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def effective_seller_id(self) -> str | None:
        """The seller credited with a sale: the assigned seller, else the creator."""
        return self.seller_id or self.created_by

    @classmethod
    def from_dict(cls, data: dict) -> "LocalVoucher":
        """Create a LocalVoucher from a database row."""
        return cls(
            id=str(data["id"]),
            code=str(data["code"]),
            site_id=str(data["site_id"]),
            status=LocalVoucherStatus.from_string(data.get("status")),
            plan_id=data.get("plan_id"),
            seller_id=data.get("seller_id"),
            created_by=data.get("created_by"),
            omada_group_id=data.get("omada_group_id"),
            omada_voucher_id=data.get("omada_voucher_id"),
            unit_price=parse_decimal(data.get("unit_price")),
            used_at=parse_timestamp(data.get("used_at")),
            created_at=parse_timestamp(data.get("created_at")),
        )


__all__ = [
    "LocalVoucher",
    "LocalVoucherStatus",
    "RemoteVoucherStatus",
    "parse_decimal",
    "parse_timestamp",
]
