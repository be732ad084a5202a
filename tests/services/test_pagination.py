import threading
from decimal import Decimal

from vouchersync.domain.models import RemoteVoucherStatus, Site
from vouchersync.infrastructure.omada import VoucherGroup
from vouchersync.services.sync import VoucherDetailFetcher, VoucherGroupEnumerator

SITE = Site(id="s-1", name="Lobby", omada_site_id="omada-lobby")


def _groups(controller, count: int) -> None:
    for index in range(count):
        controller.add_group(SITE.omada_site_id, {"id": f"g{index}", "name": f"Group {index}"})


def test_group_walk_fetches_every_page(controller, client, tokens, credentials) -> None:
    _groups(controller, 250)
    listing = VoucherGroupEnumerator(client, tokens, page_size=100).list_all_groups(
        credentials, SITE
    )

    groups = list(listing)

    assert [g.id for g in groups] == [f"g{i}" for i in range(250)]
    assert len(controller.requests_to("/voucher-groups?")) == 3
    assert listing.complete
    assert listing.error is None


def test_group_walk_is_restartable(controller, client, tokens, credentials) -> None:
    _groups(controller, 5)
    listing = VoucherGroupEnumerator(client, tokens, page_size=2).list_all_groups(
        credentials, SITE
    )

    assert len(list(listing)) == 5
    controller.add_group(SITE.omada_site_id, {"id": "late"})
    assert [g.id for g in listing][-1] == "late"
    assert len(controller.requests_to("/voucher-groups?")) == 3 + 3


def test_failed_page_keeps_partial_results(controller, client, tokens, credentials) -> None:
    _groups(controller, 250)
    controller.failing_pages["voucher-groups"] = 2
    listing = VoucherGroupEnumerator(client, tokens, page_size=100).list_all_groups(
        credentials, SITE
    )

    groups = list(listing)

    assert len(groups) == 100
    assert listing.error is not None
    assert not listing.complete
    assert len(controller.requests_to("/voucher-groups?")) == 2


def test_empty_site_makes_one_request(controller, client, tokens, credentials) -> None:
    listing = VoucherGroupEnumerator(client, tokens).list_all_groups(credentials, SITE)
    assert list(listing) == []
    assert listing.complete
    assert len(controller.requests_to("/voucher-groups?")) == 1


def test_expired_token_is_refreshed_once_mid_walk(controller, client, tokens, credentials) -> None:
    _groups(controller, 3)
    tokens.get_valid_token(credentials)
    controller.rotate_token()

    groups = list(
        VoucherGroupEnumerator(client, tokens, page_size=10).list_all_groups(credentials, SITE)
    )

    assert len(groups) == 3
    assert controller.token_requests == 2
    assert len(controller.requests_to("/voucher-groups?")) == 2


def test_cancelled_walk_stops_at_page_boundary(controller, client, tokens, credentials) -> None:
    _groups(controller, 30)
    cancel = threading.Event()
    listing = VoucherGroupEnumerator(client, tokens, page_size=10).list_all_groups(
        credentials, SITE, cancel_event=cancel
    )

    seen = []
    for group in listing:
        seen.append(group)
        if len(seen) == 10:
            cancel.set()

    assert len(seen) == 10
    assert listing.cancelled
    assert len(controller.requests_to("/voucher-groups?")) == 1


def test_detail_fetcher_returns_group_metadata(controller, client, tokens, credentials, voucher_payload) -> None:
    listed = VoucherGroup.model_validate({"id": "g1", "name": "1 hour", "unitPrice": "7.00"})
    controller.add_group(
        SITE.omada_site_id,
        {"id": "g1"},
        [voucher_payload(f"C{i:04d}", i % 3) for i in range(2500)],
    )
    controller.group_meta["g1"] = {"unitPrice": "10.00", "currency": "BRL"}

    detail = VoucherDetailFetcher(client, tokens).list_all_vouchers(credentials, SITE, listed)

    assert len(detail.vouchers) == 2500
    assert detail.complete
    assert detail.group.unit_price == Decimal("10.00")
    assert detail.group.currency == "BRL"
    assert detail.group.name == "1 hour"
    assert detail.vouchers[1].status is RemoteVoucherStatus.IN_USE
    assert len(controller.requests_to("/voucher-groups/g1?")) == 3


def test_detail_fetcher_status_filter(controller, client, tokens, credentials, voucher_payload) -> None:
    group = VoucherGroup.model_validate({"id": "g1"})
    controller.add_group(
        SITE.omada_site_id,
        {"id": "g1"},
        [voucher_payload("A", 0), voucher_payload("B", 1), voucher_payload("C", 2)],
    )

    detail = VoucherDetailFetcher(client, tokens).list_all_vouchers(
        credentials, SITE, group, status_filter=RemoteVoucherStatus.EXPIRED
    )

    assert [v.code for v in detail.vouchers] == ["C"]
    assert "filters.status=2" in controller.requests_to("/voucher-groups/g1?")[0]


def test_malformed_voucher_ends_group_walk(controller, client, tokens, credentials, voucher_payload) -> None:
    group = VoucherGroup.model_validate({"id": "g1"})
    controller.add_group(
        SITE.omada_site_id, {"id": "g1"}, [voucher_payload("A", 1), {"id": "x", "status": 1}]
    )

    detail = VoucherDetailFetcher(client, tokens).list_all_vouchers(credentials, SITE, group)

    assert detail.vouchers == []
    assert detail.error is not None
    assert detail.is_partial
