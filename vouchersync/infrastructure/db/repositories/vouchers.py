from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from vouchersync.domain.models import LocalVoucher, LocalVoucherStatus

from ..connection import iso_utcnow, to_iso
from .base import BaseRepository, new_id

_VOUCHER_COLUMNS = """
    id, code, plan_id, site_id, seller_id, created_by, omada_group_id,
    omada_voucher_id, unit_price, status, used_at, created_at
"""


class StatusRegressionError(ValueError):
    """Raised when a write would move a voucher back to ``available``."""


class VoucherRepository(BaseRepository):
    def get_voucher_by_code(self, code: str) -> LocalVoucher | None:
        row = self._fetch_one_as_dict(
            f"SELECT {_VOUCHER_COLUMNS} FROM vouchers WHERE code = ?", (code,)
        )
        return LocalVoucher.from_dict(row) if row else None

    def get_by_id(self, voucher_id: str) -> LocalVoucher | None:
        row = self._fetch_one_as_dict(
            f"SELECT {_VOUCHER_COLUMNS} FROM vouchers WHERE id = ?", (voucher_id,)
        )
        return LocalVoucher.from_dict(row) if row else None

    def list_by_site(self, site_id: str) -> list[LocalVoucher]:
        rows = self._fetch_all_as_dicts(
            f"SELECT {_VOUCHER_COLUMNS} FROM vouchers WHERE site_id = ? "
            "ORDER BY created_at DESC",
            (site_id,),
        )
        return [LocalVoucher.from_dict(row) for row in rows]

    def create(
        self,
        code: str,
        site_id: str,
        *,
        plan_id: str | None = None,
        seller_id: str | None = None,
        created_by: str | None = None,
        omada_group_id: str | None = None,
        omada_voucher_id: str | None = None,
        unit_price: Decimal | str | None = None,
    ) -> LocalVoucher:
        """Insert a freshly generated voucher in the ``available`` state."""
        voucher_id = new_id()
        self._execute(
            """
            INSERT INTO vouchers (
                id, code, plan_id, site_id, seller_id, created_by, omada_group_id,
                omada_voucher_id, unit_price, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                voucher_id,
                code,
                plan_id,
                site_id,
                seller_id,
                created_by,
                omada_group_id,
                omada_voucher_id,
                str(unit_price) if unit_price is not None else None,
                LocalVoucherStatus.AVAILABLE.value,
                iso_utcnow(),
            ),
        )
        self.conn.commit()
        voucher = self.get_by_id(voucher_id)
        assert voucher is not None
        return voucher

    def update_voucher_status_by_id(
        self,
        voucher_id: str,
        status: LocalVoucherStatus,
        *,
        used_at: datetime | None = None,
    ) -> bool:
        """Move a voucher to a consumed status.

        ``used_at`` is only written the first time; later transitions
        (in use to expired) keep the original timestamp. Returns False when
        no row matched.
        """
        if not status.is_consumed:
            raise StatusRegressionError(
                f"Refusing to set voucher {voucher_id} back to {status.value}"
            )
        cur = self._execute(
            "UPDATE vouchers SET status = ?, used_at = COALESCE(used_at, ?) WHERE id = ?",
            (status.value, to_iso(used_at) if used_at else iso_utcnow(), voucher_id),
        )
        self.conn.commit()
        return cur.rowcount > 0
