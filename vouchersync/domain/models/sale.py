"""Sale records derived from voucher consumption."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from .voucher import parse_decimal, parse_timestamp

PAYMENT_METHOD_AUTO_SYNC = "auto_sync"
PAYMENT_METHOD_MANUAL = "manual"


@dataclass
class NewSale:
    """Values for a sale that has not been persisted yet."""

    voucher_id: str
    site_id: str
    amount: Decimal
    currency: str
    sale_date: datetime
    seller_id: str | None = None
    plan_id: str | None = None
    payment_method: str = PAYMENT_METHOD_MANUAL
    notes: str | None = None


@dataclass
class Sale(NewSale):
    id: str = ""
    created_at: datetime | None = None

    @property
    def is_auto_synced(self) -> bool:
        return self.payment_method == PAYMENT_METHOD_AUTO_SYNC

    @classmethod
    def from_dict(cls, data: dict) -> "Sale":
        return cls(
            id=str(data["id"]),
            voucher_id=str(data["voucher_id"]),
            site_id=str(data["site_id"]),
            seller_id=data.get("seller_id"),
            plan_id=data.get("plan_id"),
            amount=parse_decimal(data.get("amount")) or Decimal("0"),
            currency=str(data.get("currency") or ""),
            sale_date=parse_timestamp(data.get("sale_date")),
            payment_method=str(data.get("payment_method") or PAYMENT_METHOD_MANUAL),
            notes=data.get("notes"),
            created_at=parse_timestamp(data.get("created_at")),
        )


__all__ = ["NewSale", "PAYMENT_METHOD_AUTO_SYNC", "PAYMENT_METHOD_MANUAL", "Sale"]
