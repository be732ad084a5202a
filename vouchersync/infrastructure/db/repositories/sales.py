from __future__ import annotations

import sqlite3

from vouchersync.domain.models import NewSale, Sale

from ..connection import iso_utcnow, to_iso
from .base import BaseRepository, new_id

_SALE_COLUMNS = """
    id, voucher_id, seller_id, site_id, plan_id, amount, currency,
    sale_date, payment_method, notes, created_at
"""


class DuplicateSaleAttempt(Exception):
    """Raised when a sale already exists for the voucher."""

    def __init__(self, voucher_id: str) -> None:
        super().__init__(f"A sale already exists for voucher {voucher_id}")
        self.voucher_id = voucher_id


class SaleRepository(BaseRepository):
    def get_sale_by_voucher_id(self, voucher_id: str) -> Sale | None:
        row = self._fetch_one_as_dict(
            f"SELECT {_SALE_COLUMNS} FROM sales WHERE voucher_id = ?", (voucher_id,)
        )
        return Sale.from_dict(row) if row else None

    def create_sale(self, sale: NewSale) -> Sale:
        """Insert a sale; the unique voucher_id index rejects a second one."""
        sale_id = new_id()
        try:
            self._execute(
                f"INSERT INTO sales ({_SALE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    sale_id,
                    sale.voucher_id,
                    sale.seller_id,
                    sale.site_id,
                    sale.plan_id,
                    str(sale.amount),
                    sale.currency,
                    to_iso(sale.sale_date),
                    sale.payment_method,
                    sale.notes,
                    iso_utcnow(),
                ),
            )
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            if "sales.voucher_id" in str(exc):
                raise DuplicateSaleAttempt(sale.voucher_id) from exc
            raise
        self.conn.commit()
        created = self._fetch_one_as_dict(
            f"SELECT {_SALE_COLUMNS} FROM sales WHERE id = ?", (sale_id,)
        )
        assert created is not None
        return Sale.from_dict(created)

    def list(
        self,
        site_id: str | None = None,
        payment_method: str | None = None,
        limit: int = 100,
    ) -> list[Sale]:
        """List sales newest first, optionally filtered by site and source."""
        query = f"SELECT {_SALE_COLUMNS} FROM sales WHERE 1=1"
        params: list[object] = []
        if site_id:
            query += " AND site_id = ?"
            params.append(site_id)
        if payment_method:
            query += " AND payment_method = ?"
            params.append(payment_method)
        query += " ORDER BY sale_date DESC LIMIT ?"
        params.append(limit)
        return [Sale.from_dict(row) for row in self._fetch_all_as_dicts(query, tuple(params))]

    def count(self, voucher_id: str | None = None) -> int:
        if voucher_id is None:
            return int(self._fetch_scalar("SELECT COUNT(*) FROM sales"))
        return int(
            self._fetch_scalar("SELECT COUNT(*) FROM sales WHERE voucher_id = ?", (voucher_id,))
        )
