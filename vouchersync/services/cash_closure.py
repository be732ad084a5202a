"""Cash closure: settle consumed vouchers of a site.

A closure counts every voucher the controller reports as in use or expired,
values them at their group's unit price and stores the summary. Each counted
voucher goes through the reconciliation engine first, so its local status and
sale are settled before it is deleted from the controller.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

from requests import Session

from vouchersync.app.config import SyncSettings
from vouchersync.domain.models import OmadaCredentials, RemoteVoucherStatus, Site
from vouchersync.infrastructure.db import ensure_schema
from vouchersync.infrastructure.db.repositories import (
    CashClosure,
    CashClosureRepository,
    CredentialsRepository,
    SaleRepository,
    SiteRepository,
    VoucherRepository,
)
from vouchersync.infrastructure.observability import log_context, log_exception
from vouchersync.infrastructure.omada import (
    AuthError,
    OmadaClient,
    RemoteApiError,
    RemoteVoucher,
    TokenManager,
    VoucherGroup,
)

from .base import BaseService, ConnectionFactory, sqlite_connection_factory
from .sync import (
    CredentialsMissingError,
    ReconciliationEngine,
    SiteNotFoundError,
    VoucherDetailFetcher,
    VoucherGroupEnumerator,
)


class CashClosureService(BaseService):
    def __init__(
        self,
        connection_factory: ConnectionFactory,
        client: OmadaClient,
        tokens: TokenManager | None = None,
        *,
        settings: SyncSettings | None = None,
    ) -> None:
        super().__init__(connection_factory)
        self.settings = settings or SyncSettings()
        self._client = client
        self._tokens = tokens or TokenManager(
            client,
            safety_margin_seconds=self.settings.token_safety_margin_seconds,
            default_expires_in=self.settings.token_default_expires_in,
        )
        self._groups = VoucherGroupEnumerator(
            client, self._tokens, page_size=self.settings.group_page_size
        )
        self._details = VoucherDetailFetcher(
            client, self._tokens, page_size=self.settings.voucher_page_size
        )

    @classmethod
    def from_sqlite_path(
        cls,
        db_path: str | Path | None,
        settings: SyncSettings | None = None,
        session: Session | None = None,
    ) -> "CashClosureService":
        settings = settings or SyncSettings.from_config()
        client = OmadaClient.from_settings(settings, session=session)
        return cls(sqlite_connection_factory(db_path), client, settings=settings)

    def close_site(
        self,
        site_id: str,
        seller_id: str | None = None,
        *,
        delete_remote: bool = True,
    ) -> CashClosure:
        """Count, value and (optionally) delete the consumed vouchers of a site.

        Every consumed voucher is reconciled before it leaves the controller,
        so a voucher used since the last sweep still gets its sale. A voucher
        that fails to reconcile stays on the controller for the next sweep.

        Raises:
            SiteNotFoundError: If the site is unknown or not linked to Omada.
            CredentialsMissingError: If no credentials are configured.
            AuthError: If no access token can be obtained.
        """
        with self._connection_factory() as conn:
            ensure_schema(conn)
            site = SiteRepository(conn).get_by_id(site_id)
            if site is None or not site.omada_site_id:
                raise SiteNotFoundError(f"Site {site_id} not found or not linked to Omada")
            credentials = CredentialsRepository(conn).get_omada_credentials()
            if credentials is None:
                raise CredentialsMissingError("Omada credentials are not configured")

            with log_context(site=site.name, site_id=site.id):
                self._tokens.get_valid_token(credentials)
                engine = ReconciliationEngine(
                    VoucherRepository(conn),
                    SaleRepository(conn),
                    default_currency=self.settings.default_currency,
                )
                summary: list[dict[str, Any]] = []
                total_used = 0
                total_in_use = 0
                total_amount = Decimal("0")

                groups = self._groups.list_all_groups(credentials, site)
                for group in groups:
                    entry = self._close_group(
                        credentials, site, group, engine, delete_remote
                    )
                    if entry is None:
                        continue
                    summary.append(entry)
                    total_used += entry["used_count"]
                    total_in_use += entry["in_use_count"]
                    total_amount += Decimal(entry["amount"])
                if groups.error is not None:
                    self._logger.warning(
                        "Voucher group listing stopped early; closure may be incomplete: %s",
                        groups.error,
                    )

                closure = CashClosureRepository(conn).create(
                    site_id=site.id,
                    seller_id=seller_id,
                    total_vouchers_used=total_used,
                    total_vouchers_in_use=total_in_use,
                    total_amount=total_amount,
                    summary=summary,
                )
                self._logger.info(
                    "Cash closure %s for site %s: %d used, %d in use, total %s",
                    closure.id,
                    site.name,
                    total_used,
                    total_in_use,
                    total_amount,
                )
                return closure

    def _close_group(
        self,
        credentials: OmadaCredentials,
        site: Site,
        group: VoucherGroup,
        engine: ReconciliationEngine,
        delete_remote: bool,
    ) -> dict[str, Any] | None:
        with log_context(group_id=group.id):
            in_use = self._details.list_all_vouchers(
                credentials, site, group, status_filter=RemoteVoucherStatus.IN_USE
            )
            used = self._details.list_all_vouchers(
                credentials, site, group, status_filter=RemoteVoucherStatus.EXPIRED
            )
            if not in_use.vouchers and not used.vouchers:
                return None

            settled: list[RemoteVoucher] = []
            sales_created = reconcile_failures = 0
            for detail in (in_use, used):
                for remote in detail.vouchers:
                    try:
                        outcome = engine.reconcile_voucher(remote, detail.group)
                    except Exception as exc:
                        reconcile_failures += 1
                        log_exception(
                            self._logger,
                            "Failed to reconcile voucher before closure",
                            exc,
                            voucher_code=remote.code,
                        )
                        continue
                    if outcome.sale_created:
                        sales_created += 1
                    settled.append(remote)

            unit_price = in_use.group.unit_price
            if unit_price is None:
                unit_price = used.group.unit_price
            unit_price = unit_price if unit_price is not None else Decimal("0")
            consumed_count = len(in_use.vouchers) + len(used.vouchers)
            amount = unit_price * consumed_count

            deleted = failed = 0
            if delete_remote:
                deleted, failed = self._delete_remote(credentials, site, settled)

            return {
                "group_id": group.id,
                "group_name": group.name,
                "unit_price": str(unit_price),
                "used_count": len(used.vouchers),
                "in_use_count": len(in_use.vouchers),
                "total_count": consumed_count,
                "amount": str(amount),
                "sales_created": sales_created,
                "reconcile_failures": reconcile_failures,
                "deleted_count": deleted,
                "delete_failures": failed,
            }

    def _delete_remote(
        self,
        credentials: OmadaCredentials,
        site: Site,
        vouchers: list[RemoteVoucher],
    ) -> tuple[int, int]:
        deleted = failed = 0
        for voucher in vouchers:
            try:
                token = self._tokens.get_valid_token(credentials)
                self._client.delete_voucher(
                    credentials, str(site.omada_site_id), voucher.id, token
                )
            except (AuthError, RemoteApiError) as exc:
                failed += 1
                self._logger.warning(
                    "Failed to delete voucher %s from Omada: %s", voucher.code, exc
                )
                continue
            deleted += 1
        return deleted, failed

    def list_closures(self, site_id: str) -> list[CashClosure]:
        """Closure history of a site, newest first."""
        return self._with_connection(
            lambda conn: CashClosureRepository(conn).list_by_site(site_id)
        )


__all__ = ["CashClosureService"]
