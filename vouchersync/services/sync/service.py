"""Voucher sync orchestrator.

Drives the sweep site -> voucher group -> voucher and owns the auto-sync
lifecycle (``stopped -> running -> stopped``). Failures are contained at the
level where they happen: a voucher error skips the voucher, a failed page
ends that listing with partial results, and a failed site is logged while the
sweep moves on to the next one. Nothing raised inside a scheduled sweep
reaches the event loop.
"""

from __future__ import annotations

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from requests import Session

from vouchersync.app.config import SyncSettings
from vouchersync.domain.models import OmadaCredentials, Site
from vouchersync.infrastructure.db import ensure_schema, to_iso
from vouchersync.infrastructure.db.repositories import (
    CredentialsRepository,
    SaleRepository,
    SiteRepository,
    SyncRunRepository,
    VoucherRepository,
)
from vouchersync.infrastructure.observability import (
    log_context,
    log_exception,
    record_sync_run,
)
from vouchersync.infrastructure.omada import OmadaClient, TokenManager, VoucherGroup

from ..base import BaseService, ConnectionFactory, sqlite_connection_factory
from .pagination import VoucherDetailFetcher, VoucherGroupEnumerator
from .reconcile import ReconcileOutcome, ReconciliationEngine

# A sweep taking this share of the interval is reported as running close to it.
SLOW_SWEEP_RATIO = 0.8


class SiteNotFoundError(LookupError):
    """Raised when a forced sync names a site that cannot be synced."""


class CredentialsMissingError(RuntimeError):
    """Raised when no Omada credentials record has been configured."""


@dataclass
class GroupSyncStats:
    group_id: str
    group_name: str = ""
    vouchers_seen: int = 0
    vouchers_updated: int = 0
    sales_created: int = 0
    not_found: int = 0
    regressions: int = 0
    partial: bool = False
    errors: list[str] = field(default_factory=list)


@dataclass
class SiteSyncResult:
    site_id: str
    site_name: str
    groups: list[GroupSyncStats] = field(default_factory=list)
    partial: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def vouchers_seen(self) -> int:
        return sum(g.vouchers_seen for g in self.groups)

    @property
    def vouchers_updated(self) -> int:
        return sum(g.vouchers_updated for g in self.groups)

    @property
    def sales_created(self) -> int:
        return sum(g.sales_created for g in self.groups)

    @property
    def all_errors(self) -> list[str]:
        collected = list(self.errors)
        for group in self.groups:
            collected.extend(group.errors)
        return collected


@dataclass
class SweepResult:
    run_id: int | None
    status: str
    sites_processed: int = 0
    sites_failed: int = 0
    sites_skipped: int = 0
    vouchers_seen: int = 0
    vouchers_updated: int = 0
    sales_created: int = 0
    duration_seconds: float = 0.0
    errors: list[str] = field(default_factory=list)
    sites: list[SiteSyncResult] = field(default_factory=list)


class VoucherSyncService(BaseService):
    """Reconcile every active site against the Omada controller."""

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

        self._is_running = False
        self._last_sync_time: datetime | None = None
        self._task: asyncio.Task | None = None
        self._cancel_event = threading.Event()

    @classmethod
    def from_sqlite_path(
        cls,
        db_path: str | Path | None,
        settings: SyncSettings | None = None,
        session: Session | None = None,
    ) -> "VoucherSyncService":
        settings = settings or SyncSettings.from_config()
        client = OmadaClient.from_settings(settings, session=session)
        return cls(sqlite_connection_factory(db_path), client, settings=settings)

    @property
    def tokens(self) -> TokenManager:
        return self._tokens

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    def get_status(self) -> dict[str, Any]:
        """Read-only snapshot for status endpoints."""
        return {
            "is_running": self._is_running,
            "last_sync_time": to_iso(self._last_sync_time) if self._last_sync_time else None,
            "sync_interval_ms": self.settings.sync_interval_ms,
        }

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------
    def sync_all_sites(
        self, *, cancel_event: threading.Event | None = None
    ) -> SweepResult:
        """Run one full sweep over all active sites linked to the controller."""
        started = time.perf_counter()

        def _prepare(conn):
            sites = SiteRepository(conn).get_all_sites()
            return sites, SyncRunRepository(conn).start()

        sites, run_id = self._with_connection(_prepare)
        active = [site for site in sites if site.is_syncable]
        self._logger.info(
            "Starting voucher sync sweep over %d of %d sites", len(active), len(sites)
        )

        outcomes = self._run_sites(active, cancel_event)

        result = SweepResult(run_id=run_id, status="success")
        for site, outcome in zip(active, outcomes):
            if isinstance(outcome, Exception):
                result.sites_failed += 1
                result.errors.append(f"{site.name}: {outcome}")
                continue
            if outcome is None:
                result.sites_skipped += 1
                continue
            result.sites_processed += 1
            result.sites.append(outcome)
            result.vouchers_seen += outcome.vouchers_seen
            result.vouchers_updated += outcome.vouchers_updated
            result.sales_created += outcome.sales_created
            result.errors.extend(f"{site.name}: {err}" for err in outcome.all_errors)

        cancelled = result.sites_skipped > 0 or (
            cancel_event is not None and cancel_event.is_set()
        )
        if cancelled:
            result.status = "cancelled"
            result.errors.append(
                f"sweep cancelled: {result.sites_skipped} of {len(active)} sites skipped"
            )
        elif result.sites_failed and not result.sites_processed:
            result.status = "failed"
        elif result.sites_failed or result.errors or any(s.partial for s in result.sites):
            result.status = "partial"
        result.duration_seconds = time.perf_counter() - started

        self._with_connection(
            lambda conn: SyncRunRepository(conn).finish(
                run_id,
                status=result.status,
                sites_processed=result.sites_processed,
                sites_failed=result.sites_failed,
                vouchers_seen=result.vouchers_seen,
                vouchers_updated=result.vouchers_updated,
                sales_created=result.sales_created,
                errors=result.errors,
            )
        )
        if not cancelled:
            self._last_sync_time = datetime.now(timezone.utc)
        record_sync_run(result.status, result.duration_seconds)
        self._logger.info(
            "Voucher sync sweep %s in %.1fs: %d sites, %d failed, %d vouchers updated, "
            "%d sales recorded",
            result.status,
            result.duration_seconds,
            result.sites_processed,
            result.sites_failed,
            result.vouchers_updated,
            result.sales_created,
        )
        return result

    def _run_sites(
        self, sites: list[Site], cancel_event: threading.Event | None
    ) -> list[SiteSyncResult | Exception | None]:
        workers = min(self.settings.max_site_workers, len(sites))
        if workers <= 1:
            return [self._sync_site_guarded(site, cancel_event) for site in sites]
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="voucher-sync"
        ) as pool:
            return list(
                pool.map(lambda site: self._sync_site_guarded(site, cancel_event), sites)
            )

    def _sync_site_guarded(
        self, site: Site, cancel_event: threading.Event | None
    ) -> SiteSyncResult | Exception | None:
        if cancel_event is not None and cancel_event.is_set():
            return None
        try:
            return self.sync_site_vouchers(site, cancel_event=cancel_event)
        except Exception as exc:
            log_exception(
                self._logger,
                "Voucher sync failed for site",
                exc,
                site=site.name,
                site_id=site.id,
            )
            return exc

    def sync_site_vouchers(
        self,
        site: Site,
        *,
        cancel_event: threading.Event | None = None,
    ) -> SiteSyncResult:
        """Reconcile every voucher group of one site.

        Raises:
            CredentialsMissingError: If no credentials are configured.
            AuthError: If no access token can be obtained.
        """
        with log_context(site=site.name, site_id=site.id):
            with self._connection_factory() as conn:
                ensure_schema(conn)
                credentials = self._load_credentials(conn)
                self._tokens.get_valid_token(credentials)

                engine = self._engine(conn)
                result = SiteSyncResult(site_id=site.id, site_name=site.name)
                groups = self._groups.list_all_groups(
                    credentials, site, cancel_event=cancel_event
                )
                for group in groups:
                    result.groups.append(
                        self._sync_group(site, group, credentials, engine, cancel_event)
                    )
                if groups.error is not None:
                    result.partial = True
                    result.errors.append(f"voucher group listing stopped: {groups.error}")
                if groups.cancelled:
                    result.partial = True

                if not result.partial:
                    SiteRepository(conn).mark_synced(site.id)
            self._logger.info(
                "Site %s synced: %d groups, %d vouchers updated, %d sales recorded",
                site.name,
                len(result.groups),
                result.vouchers_updated,
                result.sales_created,
            )
            return result

    def sync_voucher_group(
        self,
        site: Site,
        group: VoucherGroup,
        *,
        cancel_event: threading.Event | None = None,
    ) -> GroupSyncStats:
        """Reconcile a single voucher group outside a full site pass."""
        with log_context(site=site.name, site_id=site.id):
            with self._connection_factory() as conn:
                ensure_schema(conn)
                credentials = self._load_credentials(conn)
                return self._sync_group(
                    site, group, credentials, self._engine(conn), cancel_event
                )

    def _sync_group(
        self,
        site: Site,
        group: VoucherGroup,
        credentials: OmadaCredentials,
        engine: ReconciliationEngine,
        cancel_event: threading.Event | None,
    ) -> GroupSyncStats:
        with log_context(group_id=group.id):
            stats = GroupSyncStats(group_id=group.id, group_name=group.name)
            detail = self._details.list_all_vouchers(
                credentials, site, group, cancel_event=cancel_event
            )
            for remote in detail.vouchers:
                stats.vouchers_seen += 1
                try:
                    outcome = engine.reconcile_voucher(remote, detail.group)
                except Exception as exc:
                    log_exception(
                        self._logger,
                        "Failed to reconcile voucher",
                        exc,
                        voucher_code=remote.code,
                    )
                    stats.errors.append(f"voucher {remote.code}: {exc}")
                    continue
                if outcome.updated:
                    stats.vouchers_updated += 1
                if outcome.sale_created:
                    stats.sales_created += 1
                if outcome.outcome is ReconcileOutcome.NOT_FOUND:
                    stats.not_found += 1
                elif outcome.outcome is ReconcileOutcome.REGRESSION:
                    stats.regressions += 1

            if detail.error is not None:
                stats.partial = True
                stats.errors.append(f"group {group.id} listing stopped: {detail.error}")
            elif detail.cancelled:
                stats.partial = True

            self._logger.info(
                "Group %s: %d vouchers synced, %d updated, %d sales recorded",
                group.name or group.id,
                stats.vouchers_seen,
                stats.vouchers_updated,
                stats.sales_created,
            )
            return stats

    def force_site_sync(self, site_id: str) -> SiteSyncResult:
        """Sync one site on demand through the same path as a scheduled sweep."""
        site = self._with_connection(lambda conn: SiteRepository(conn).get_by_id(site_id))
        if site is None:
            raise SiteNotFoundError(f"Site {site_id} not found")
        if not site.omada_site_id:
            raise SiteNotFoundError(f"Site {site_id} is not linked to an Omada site")
        self._logger.info("Forced voucher sync for site %s", site.name)
        return self.sync_site_vouchers(site)

    def _load_credentials(self, conn) -> OmadaCredentials:
        credentials = CredentialsRepository(conn).get_omada_credentials()
        if credentials is None:
            raise CredentialsMissingError("Omada credentials are not configured")
        return credentials

    def _engine(self, conn) -> ReconciliationEngine:
        return ReconciliationEngine(
            VoucherRepository(conn),
            SaleRepository(conn),
            default_currency=self.settings.default_currency,
        )

    # ------------------------------------------------------------------
    # Auto-sync lifecycle
    # ------------------------------------------------------------------
    async def start_auto_sync(self) -> None:
        """Run a sweep now, then keep sweeping every ``sync_interval_seconds``."""
        if self._is_running:
            self._logger.info("Voucher auto-sync already running")
            return
        self._is_running = True
        self._cancel_event = threading.Event()
        self._logger.info(
            "Starting voucher auto-sync every %ss", self.settings.sync_interval_seconds
        )
        await self._run_scheduled_sweep()
        if self._is_running:
            self._task = asyncio.create_task(self._interval_loop())

    async def stop_auto_sync(self) -> None:
        """Cancel the scheduled sweeps and ask an in-flight sweep to wind down."""
        if not self._is_running and self._task is None:
            return
        self._is_running = False
        self._cancel_event.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._logger.info("Voucher auto-sync stopped")

    async def _interval_loop(self) -> None:
        interval = self.settings.sync_interval_seconds
        next_start = time.monotonic() + interval
        while self._is_running:
            await asyncio.sleep(max(0.0, next_start - time.monotonic()))
            if not self._is_running:
                break
            next_start = time.monotonic() + interval
            await self._run_scheduled_sweep()

    async def _run_scheduled_sweep(self) -> None:
        started = time.perf_counter()
        try:
            await asyncio.to_thread(self.sync_all_sites, cancel_event=self._cancel_event)
        except Exception as exc:
            log_exception(self._logger, "Voucher sync sweep failed", exc)
            record_sync_run("error", time.perf_counter() - started)
        self._check_sweep_duration(time.perf_counter() - started)

    def _check_sweep_duration(self, duration: float) -> None:
        interval = self.settings.sync_interval_seconds
        if interval <= 0:
            return
        if duration >= interval:
            self._logger.warning(
                "Voucher sync sweep took %.1fs, longer than the %.0fs interval",
                duration,
                interval,
            )
        elif duration >= interval * SLOW_SWEEP_RATIO:
            self._logger.warning(
                "Voucher sync sweep took %.1fs, close to the %.0fs interval",
                duration,
                interval,
            )


__all__ = [
    "CredentialsMissingError",
    "GroupSyncStats",
    "SiteNotFoundError",
    "SiteSyncResult",
    "SweepResult",
    "VoucherSyncService",
]
