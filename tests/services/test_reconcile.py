import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from vouchersync.domain.models import LocalVoucherStatus
from vouchersync.infrastructure.db.repositories import (
    SaleRepository,
    SiteRepository,
    VoucherRepository,
)
from vouchersync.infrastructure.observability import get_metrics_summary
from vouchersync.infrastructure.omada import RemoteVoucher, VoucherGroup
from vouchersync.services.sync import ReconcileOutcome, ReconciliationEngine

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
GROUP = VoucherGroup.model_validate(
    {"id": "g1", "name": "1 hour", "unitPrice": "10.00", "currency": "BRL"}
)


@pytest.fixture
def site(conn):
    return SiteRepository(conn).create("Lobby", omada_site_id="omada-lobby")


@pytest.fixture
def vouchers(conn) -> VoucherRepository:
    return VoucherRepository(conn)


@pytest.fixture
def sales(conn) -> SaleRepository:
    return SaleRepository(conn)


@pytest.fixture
def engine(vouchers, sales) -> ReconciliationEngine:
    return ReconciliationEngine(vouchers, sales, clock=lambda: FIXED_NOW)


def _remote(code: str, status: int, **extra) -> RemoteVoucher:
    return RemoteVoucher.model_validate({"id": f"r-{code}", "code": code, "status": status, **extra})


def _voucher_in(vouchers, site, status: LocalVoucherStatus, code: str = "AB12CD", **kwargs):
    voucher = vouchers.create(code, site.id, **kwargs)
    if status.is_consumed:
        vouchers.update_voucher_status_by_id(voucher.id, status)
    return vouchers.get_by_id(voucher.id)


@pytest.mark.parametrize(
    ("local", "remote", "expected_status", "outcome", "sale"),
    [
        (LocalVoucherStatus.AVAILABLE, 0, LocalVoucherStatus.AVAILABLE, ReconcileOutcome.UNCHANGED, False),
        (LocalVoucherStatus.AVAILABLE, 1, LocalVoucherStatus.IN_USE, ReconcileOutcome.UPDATED, True),
        (LocalVoucherStatus.AVAILABLE, 2, LocalVoucherStatus.EXPIRED, ReconcileOutcome.UPDATED, True),
        (LocalVoucherStatus.IN_USE, 1, LocalVoucherStatus.IN_USE, ReconcileOutcome.UNCHANGED, False),
        (LocalVoucherStatus.EXPIRED, 2, LocalVoucherStatus.EXPIRED, ReconcileOutcome.UNCHANGED, False),
        (LocalVoucherStatus.IN_USE, 2, LocalVoucherStatus.EXPIRED, ReconcileOutcome.UPDATED, False),
        (LocalVoucherStatus.EXPIRED, 1, LocalVoucherStatus.IN_USE, ReconcileOutcome.UPDATED, False),
        (LocalVoucherStatus.IN_USE, 0, LocalVoucherStatus.IN_USE, ReconcileOutcome.REGRESSION, False),
        (LocalVoucherStatus.EXPIRED, 0, LocalVoucherStatus.EXPIRED, ReconcileOutcome.REGRESSION, False),
    ],
)
def test_transition_table(
    engine, vouchers, sales, site, local, remote, expected_status, outcome, sale
) -> None:
    voucher = _voucher_in(vouchers, site, local)

    result = engine.reconcile_voucher(_remote("AB12CD", remote), GROUP)

    assert result.outcome is outcome
    assert result.updated is (outcome is ReconcileOutcome.UPDATED)
    assert result.sale_created is sale
    assert vouchers.get_by_id(voucher.id).status is expected_status
    assert sales.count(voucher.id) == (1 if sale else 0)


def test_end_to_end_scenario(engine, vouchers, sales, site) -> None:
    voucher = vouchers.create("AB12CD", site.id, seller_id="seller-1")
    remote = _remote("AB12CD", 1)

    first = engine.reconcile_voucher(remote, GROUP)

    assert first.updated and first.sale_created
    assert vouchers.get_by_id(voucher.id).status is LocalVoucherStatus.IN_USE
    sale = sales.get_sale_by_voucher_id(voucher.id)
    assert sale.amount == Decimal("10.00")
    assert sale.currency == "BRL"
    assert sale.seller_id == "seller-1"
    assert sale.is_auto_synced

    second = engine.reconcile_voucher(remote, GROUP)

    assert second.outcome is ReconcileOutcome.UNCHANGED
    assert not second.sale_created
    assert sales.count(voucher.id) == 1
    assert vouchers.get_by_id(voucher.id).status is LocalVoucherStatus.IN_USE


@pytest.mark.parametrize("passes", [1, 2, 5])
def test_repeated_passes_create_one_sale(engine, vouchers, sales, site, passes) -> None:
    voucher = vouchers.create("AB12CD", site.id)
    for _ in range(passes):
        engine.reconcile_voucher(_remote("AB12CD", 2), GROUP)
    assert sales.count(voucher.id) == 1


def test_in_use_then_expired_keeps_first_sale(engine, vouchers, sales, site) -> None:
    voucher = vouchers.create("AB12CD", site.id)
    started = 1_714_560_000_000

    engine.reconcile_voucher(_remote("AB12CD", 1, startTime=started), GROUP)
    first_sale = sales.get_sale_by_voucher_id(voucher.id)
    result = engine.reconcile_voucher(_remote("AB12CD", 2, startTime=started), GROUP)

    assert result.updated and not result.sale_created
    assert sales.count() == 1
    assert sales.get_sale_by_voucher_id(voucher.id).id == first_sale.id
    assert first_sale.sale_date == datetime.fromtimestamp(started / 1000, tz=timezone.utc)
    assert vouchers.get_by_id(voucher.id).used_at == first_sale.sale_date


def test_unmatched_code_is_skipped(engine, sales, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        result = engine.reconcile_voucher(_remote("NOPE", 1), GROUP)

    assert result.outcome is ReconcileOutcome.NOT_FOUND
    assert not result.updated
    assert not result.sale_created
    assert sales.count() == 0
    assert "NOPE" in caplog.text


def test_regression_is_logged_loudly(engine, vouchers, site, caplog) -> None:
    _voucher_in(vouchers, site, LocalVoucherStatus.IN_USE)
    with caplog.at_level(logging.ERROR):
        engine.reconcile_voucher(_remote("AB12CD", 0), GROUP)

    [record] = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert record.getMessage().startswith("Status regression")


def test_unknown_remote_status_is_skipped(engine, vouchers, sales, site) -> None:
    voucher = vouchers.create("AB12CD", site.id)
    result = engine.reconcile_voucher(_remote("AB12CD", 5), GROUP)

    assert result.outcome is ReconcileOutcome.UNKNOWN_STATUS
    assert vouchers.get_by_id(voucher.id).status is LocalVoucherStatus.AVAILABLE
    assert sales.count() == 0


def test_sale_falls_back_to_voucher_price_and_default_currency(engine, vouchers, sales, site) -> None:
    voucher = vouchers.create("AB12CD", site.id, unit_price="4.50", created_by="admin-1")
    bare_group = VoucherGroup.model_validate({"id": "g2"})

    engine.reconcile_voucher(_remote("AB12CD", 1), bare_group)

    sale = sales.get_sale_by_voucher_id(voucher.id)
    assert sale.amount == Decimal("4.50")
    assert sale.currency == "BRL"
    assert sale.seller_id == "admin-1"
    assert sale.sale_date == FIXED_NOW


def test_existing_manual_sale_is_respected(engine, vouchers, sales, site) -> None:
    from vouchersync.domain.models import NewSale

    voucher = vouchers.create("AB12CD", site.id)
    sales.create_sale(
        NewSale(
            voucher_id=voucher.id,
            site_id=site.id,
            amount=Decimal("12.00"),
            currency="BRL",
            sale_date=FIXED_NOW,
        )
    )

    result = engine.reconcile_voucher(_remote("AB12CD", 1), GROUP)

    assert result.updated and not result.sale_created
    assert sales.count() == 1
    assert not sales.get_sale_by_voucher_id(voucher.id).is_auto_synced


def test_lost_race_on_sale_insert_is_not_an_error(engine, vouchers, sales, site, monkeypatch) -> None:
    voucher = vouchers.create("AB12CD", site.id)
    local = vouchers.get_by_id(voucher.id)
    monkeypatch.setattr(sales, "get_sale_by_voucher_id", lambda _voucher_id: None)

    assert engine.ensure_sale_recorded(local, GROUP, _remote("AB12CD", 1)) is True
    assert engine.ensure_sale_recorded(local, GROUP, _remote("AB12CD", 1)) is False
    assert sales.count(voucher.id) == 1


def test_outcomes_are_counted(engine, vouchers, site) -> None:
    vouchers.create("AB12CD", site.id)
    engine.reconcile_voucher(_remote("AB12CD", 1), GROUP)
    engine.reconcile_voucher(_remote("MISSING", 1), GROUP)

    counters = get_metrics_summary()["counters"]
    assert counters["voucher_sync_vouchers_total"]["outcome=updated"] == 1
    assert counters["voucher_sync_vouchers_total"]["outcome=not_found"] == 1
    assert counters["voucher_sync_sales_created_total"]["default"] == 1
