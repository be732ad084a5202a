"""Reconcile remote voucher status against local records.

Remote status drives local status forward only:

==============  ===================  ==========================================
Remote          Local before         Action
==============  ===================  ==========================================
Unused          available            nothing
Unused          in_use / expired     status regression: logged, never reverted
InUse           available            move to in_use, record the sale
InUse           in_use               nothing
Expired         available            move to expired, record the sale
Expired         expired              nothing
InUse/Expired   the other one        move status, no second sale
==============  ===================  ==========================================

Local vouchers are matched by ``code``; the remote numeric id is not stable.
:meth:`ReconciliationEngine.ensure_sale_recorded` is the only place a sale is
created from sync, and the unique index on ``sales.voucher_id`` backs it up
when two passes race on the same voucher.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from vouchersync.domain.models import (
    PAYMENT_METHOD_AUTO_SYNC,
    LocalVoucher,
    LocalVoucherStatus,
    NewSale,
)
from vouchersync.infrastructure.db.repositories import (
    DuplicateSaleAttempt,
    SaleRepository,
    VoucherRepository,
)
from vouchersync.infrastructure.observability import (
    get_logger,
    record_sale_created,
    record_voucher_outcome,
)
from vouchersync.infrastructure.omada import RemoteVoucher, VoucherGroup

_logger = get_logger(__name__)

DEFAULT_CURRENCY = "BRL"


class ReconcileOutcome(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    REGRESSION = "regression"
    UNKNOWN_STATUS = "unknown_status"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    sale_created: bool = False

    @property
    def updated(self) -> bool:
        return self.outcome is ReconcileOutcome.UPDATED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def remote_start_time(remote: RemoteVoucher) -> datetime | None:
    """Usage start reported by the controller (epoch milliseconds)."""
    if not remote.start_time:
        return None
    return datetime.fromtimestamp(remote.start_time / 1000, tz=timezone.utc)


class ReconciliationEngine:
    """Apply observed remote status to local vouchers and derive sales."""

    def __init__(
        self,
        vouchers: VoucherRepository,
        sales: SaleRepository,
        *,
        default_currency: str = DEFAULT_CURRENCY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._vouchers = vouchers
        self._sales = sales
        self._default_currency = default_currency
        self._clock = clock

    def reconcile_voucher(
        self, remote: RemoteVoucher, group: VoucherGroup
    ) -> ReconcileResult:
        result = self._reconcile(remote, group)
        record_voucher_outcome(result.outcome.value)
        return result

    def _reconcile(self, remote: RemoteVoucher, group: VoucherGroup) -> ReconcileResult:
        target = LocalVoucherStatus.from_remote(remote.status)
        if target is None:
            _logger.warning(
                "Voucher %s has unrecognised remote status; skipping", remote.code
            )
            return ReconcileResult(ReconcileOutcome.UNKNOWN_STATUS)

        local = self._vouchers.get_voucher_by_code(remote.code)
        if local is None:
            _logger.warning("Voucher %s not found locally; skipping", remote.code)
            return ReconcileResult(ReconcileOutcome.NOT_FOUND)

        if local.status is target:
            _logger.debug("Voucher %s already %s", local.code, target.value)
            return ReconcileResult(ReconcileOutcome.UNCHANGED)

        if not target.is_consumed:
            _logger.error(
                "Status regression: voucher %s is %s locally but unused on the "
                "controller; leaving local status unchanged",
                local.code,
                local.status.value,
            )
            return ReconcileResult(ReconcileOutcome.REGRESSION)

        sale_created = False
        if not local.status.is_consumed:
            # Record the sale before moving the status so a failed insert is
            # retried on the next pass instead of being hidden by the new status.
            sale_created = self.ensure_sale_recorded(local, group, remote)

        self._vouchers.update_voucher_status_by_id(
            local.id, target, used_at=remote_start_time(remote) or self._clock()
        )
        _logger.info(
            "Voucher %s: %s -> %s", local.code, local.status.value, target.value
        )
        return ReconcileResult(ReconcileOutcome.UPDATED, sale_created=sale_created)

    def sale_amount(self, local: LocalVoucher, group: VoucherGroup) -> Decimal:
        if group.unit_price is not None:
            return group.unit_price
        if local.unit_price is not None:
            return local.unit_price
        return Decimal("0")

    def ensure_sale_recorded(
        self, local: LocalVoucher, group: VoucherGroup, remote: RemoteVoucher
    ) -> bool:
        """Create the auto-synced sale for ``local`` unless one exists.

        Returns True when a sale was inserted by this call.
        """
        existing = self._sales.get_sale_by_voucher_id(local.id)
        if existing is not None:
            _logger.info(
                "Sale already recorded for voucher %s (sale %s)", local.code, existing.id
            )
            return False

        status_label = remote.status.name.lower().replace("_", " ")
        sale = NewSale(
            voucher_id=local.id,
            site_id=local.site_id,
            seller_id=local.effective_seller_id,
            plan_id=local.plan_id,
            amount=self.sale_amount(local, group),
            currency=group.currency or self._default_currency,
            sale_date=remote_start_time(remote) or self._clock(),
            payment_method=PAYMENT_METHOD_AUTO_SYNC,
            notes=f"Auto-synced from Omada: voucher {local.code} {status_label}",
        )
        try:
            created = self._sales.create_sale(sale)
        except DuplicateSaleAttempt:
            _logger.info("Sale for voucher %s was recorded concurrently", local.code)
            return False

        record_sale_created()
        _logger.info(
            "Recorded sale %s for voucher %s: %s %s",
            created.id,
            local.code,
            created.amount,
            created.currency,
        )
        return True


__all__ = [
    "DEFAULT_CURRENCY",
    "ReconcileOutcome",
    "ReconcileResult",
    "ReconciliationEngine",
    "remote_start_time",
]
