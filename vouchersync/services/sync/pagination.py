"""Page walkers for the Omada voucher listings.

Both listings use the same algorithm: start at page 1, fetch with a fixed page
size, stop once ``currentPage * currentSize >= totalRows`` (or a page comes
back empty). A failed page ends the walk but keeps what was gathered so far;
callers inspect :attr:`PagedListing.error` to learn that the result is short.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from vouchersync.domain.models import OmadaCredentials, RemoteVoucherStatus, Site
from vouchersync.infrastructure.observability import get_logger
from vouchersync.infrastructure.omada import (
    AuthError,
    OmadaClient,
    Page,
    RemoteApiError,
    RemoteVoucher,
    TokenManager,
    VoucherGroup,
)

_logger = get_logger(__name__)

T = TypeVar("T")

GROUP_PAGE_SIZE = 100
VOUCHER_PAGE_SIZE = 1000


class PagedListing(Generic[T]):
    """Lazy walk over every page of one Open API listing.

    Iterating performs a fresh walk from page 1 each time, so the same
    listing can be consumed more than once. Status of the most recent walk is
    exposed through :attr:`error`, :attr:`complete` and :attr:`pages_fetched`.

    An expired or rejected token on a page triggers one refresh through the
    :class:`TokenManager` and one retry of that page.
    """

    def __init__(
        self,
        client: OmadaClient,
        tokens: TokenManager,
        credentials: OmadaCredentials,
        url_for_page: Callable[[int], str],
        parse: Callable[[dict[str, Any]], T],
        *,
        endpoint: str,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._client = client
        self._tokens = tokens
        self._credentials = credentials
        self._url_for_page = url_for_page
        self._parse = parse
        self._endpoint = endpoint
        self._cancel_event = cancel_event
        self._reset()

    def _reset(self) -> None:
        self.error: Exception | None = None
        self.complete = False
        self.cancelled = False
        self.pages_fetched = 0
        self.first_page: Page | None = None

    def _fetch(self, page_number: int) -> Page:
        url = self._url_for_page(page_number)
        token = self._tokens.get_valid_token(self._credentials)
        try:
            return self._client.fetch_page(url, token, endpoint=self._endpoint)
        except RemoteApiError as exc:
            if not exc.is_token_error:
                raise
            _logger.warning(
                "Omada token rejected on %s page %d (%s); refreshing",
                self._endpoint,
                page_number,
                exc,
            )
            self._tokens.invalidate()
            token = self._tokens.get_valid_token(self._credentials)
            return self._client.fetch_page(url, token, endpoint=self._endpoint)

    def _parse_page(self, page: Page) -> list[T]:
        try:
            return [self._parse(item) for item in page.items]
        except ValidationError as exc:
            raise RemoteApiError(
                f"Malformed {self._endpoint} item on page {page.current_page}: {exc}"
            ) from exc

    def __iter__(self) -> Iterator[T]:
        self._reset()
        page_number = 1
        while True:
            if self._cancel_event is not None and self._cancel_event.is_set():
                self.cancelled = True
                _logger.info(
                    "Stopping %s walk at page %d: cancelled", self._endpoint, page_number
                )
                return
            try:
                page = self._fetch(page_number)
                items = self._parse_page(page)
            except (RemoteApiError, AuthError) as exc:
                self.error = exc
                _logger.error(
                    "Failed to fetch %s page %d: %s", self._endpoint, page_number, exc
                )
                return

            self.pages_fetched += 1
            if self.first_page is None:
                self.first_page = page
            yield from items

            if not items or page.current_size <= 0 or not page.has_more:
                self.complete = True
                return
            page_number += 1


class VoucherGroupEnumerator:
    """List every voucher group of a site."""

    def __init__(
        self,
        client: OmadaClient,
        tokens: TokenManager,
        *,
        page_size: int = GROUP_PAGE_SIZE,
    ) -> None:
        self._client = client
        self._tokens = tokens
        self.page_size = page_size

    def list_all_groups(
        self,
        credentials: OmadaCredentials,
        site: Site,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PagedListing[VoucherGroup]:
        if not site.omada_site_id:
            raise ValueError(f"Site {site.id} is not linked to an Omada site")
        omada_site_id = site.omada_site_id

        def url_for_page(page: int) -> str:
            return self._client.voucher_groups_url(
                credentials, omada_site_id, page=page, page_size=self.page_size
            )

        return PagedListing(
            self._client,
            self._tokens,
            credentials,
            url_for_page,
            VoucherGroup.model_validate,
            endpoint="voucher_groups",
            cancel_event=cancel_event,
        )


@dataclass
class GroupDetail:
    """Every voucher of one group plus the group metadata from the first page."""

    group: VoucherGroup
    vouchers: list[RemoteVoucher] = field(default_factory=list)
    error: Exception | None = None
    complete: bool = False
    cancelled: bool = False

    @property
    def is_partial(self) -> bool:
        return not self.complete


class VoucherDetailFetcher:
    """Walk the vouchers inside a group (group-detail endpoint)."""

    def __init__(
        self,
        client: OmadaClient,
        tokens: TokenManager,
        *,
        page_size: int = VOUCHER_PAGE_SIZE,
    ) -> None:
        self._client = client
        self._tokens = tokens
        self.page_size = page_size

    def list_all_vouchers(
        self,
        credentials: OmadaCredentials,
        site: Site,
        group: VoucherGroup,
        *,
        status_filter: RemoteVoucherStatus | None = None,
        cancel_event: threading.Event | None = None,
    ) -> GroupDetail:
        """Fetch every voucher of ``group``, optionally only those with ``status_filter``."""
        if not site.omada_site_id:
            raise ValueError(f"Site {site.id} is not linked to an Omada site")
        omada_site_id = site.omada_site_id

        def url_for_page(page: int) -> str:
            return self._client.voucher_group_url(
                credentials,
                omada_site_id,
                group.id,
                page=page,
                page_size=self.page_size,
                status_filter=int(status_filter) if status_filter is not None else None,
            )

        listing: PagedListing[RemoteVoucher] = PagedListing(
            self._client,
            self._tokens,
            credentials,
            url_for_page,
            RemoteVoucher.model_validate,
            endpoint="voucher_group_detail",
            cancel_event=cancel_event,
        )
        vouchers = list(listing)
        return GroupDetail(
            group=self._group_metadata(listing.first_page, group),
            vouchers=vouchers,
            error=listing.error,
            complete=listing.complete,
            cancelled=listing.cancelled,
        )

    @staticmethod
    def _group_metadata(first_page: Page | None, listed: VoucherGroup) -> VoucherGroup:
        """Prefer the detail page's own price and currency over the listed group."""
        if first_page is None or not first_page.metadata:
            return listed
        payload = {"id": listed.id, **first_page.metadata}
        try:
            detail = VoucherGroup.model_validate(payload)
        except ValidationError:
            _logger.debug("Ignoring unparseable metadata for group %s", listed.id)
            return listed
        return detail.merged_with(listed)


__all__ = [
    "GROUP_PAGE_SIZE",
    "GroupDetail",
    "PagedListing",
    "VOUCHER_PAGE_SIZE",
    "VoucherDetailFetcher",
    "VoucherGroupEnumerator",
]
