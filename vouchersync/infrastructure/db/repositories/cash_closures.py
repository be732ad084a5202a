from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from vouchersync.domain.models.voucher import parse_decimal

from ..connection import iso_utcnow
from .base import BaseRepository, new_id


@dataclass
class CashClosure:
    id: str
    site_id: str
    seller_id: str | None
    total_vouchers_used: int
    total_vouchers_in_use: int
    total_amount: Decimal
    closure_date: str
    summary: list[dict[str, Any]] = field(default_factory=list)


class CashClosureRepository(BaseRepository):
    def create(
        self,
        *,
        site_id: str,
        seller_id: str | None,
        total_vouchers_used: int,
        total_vouchers_in_use: int,
        total_amount: Decimal,
        summary: list[dict[str, Any]],
    ) -> CashClosure:
        closure = CashClosure(
            id=new_id(),
            site_id=site_id,
            seller_id=seller_id,
            total_vouchers_used=total_vouchers_used,
            total_vouchers_in_use=total_vouchers_in_use,
            total_amount=total_amount,
            closure_date=iso_utcnow(),
            summary=summary,
        )
        self._execute(
            """
            INSERT INTO cash_closures (
                id, site_id, seller_id, total_vouchers_used, total_vouchers_in_use,
                total_amount, summary, closure_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                closure.id,
                site_id,
                seller_id,
                total_vouchers_used,
                total_vouchers_in_use,
                str(total_amount),
                json.dumps(summary, default=str),
                closure.closure_date,
            ),
        )
        self.conn.commit()
        return closure

    def list_by_site(self, site_id: str) -> list[CashClosure]:
        rows = self._fetch_all_as_dicts(
            """
            SELECT id, site_id, seller_id, total_vouchers_used, total_vouchers_in_use,
                   total_amount, summary, closure_date
            FROM cash_closures WHERE site_id = ?
            ORDER BY closure_date DESC, rowid DESC
            """,
            (site_id,),
        )
        return [
            CashClosure(
                id=row["id"],
                site_id=row["site_id"],
                seller_id=row["seller_id"],
                total_vouchers_used=int(row["total_vouchers_used"]),
                total_vouchers_in_use=int(row["total_vouchers_in_use"]),
                total_amount=parse_decimal(row["total_amount"]) or Decimal("0"),
                closure_date=row["closure_date"],
                summary=json.loads(row["summary"] or "[]"),
            )
            for row in rows
        ]
