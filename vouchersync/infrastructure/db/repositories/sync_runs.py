from __future__ import annotations

from typing import Any

from ..connection import iso_utcnow
from .base import BaseRepository


class SyncRunRepository(BaseRepository):
    """Ledger of full sync sweeps."""

    def start(self) -> int:
        cur = self._execute(
            "INSERT INTO sync_runs (started_at, status) VALUES (?, ?)",
            (iso_utcnow(), "running"),
        )
        self.conn.commit()
        if cur.lastrowid is None:
            raise RuntimeError("Failed to insert sync_runs record; lastrowid is None")
        return int(cur.lastrowid)

    def finish(
        self,
        run_id: int,
        *,
        status: str,
        sites_processed: int,
        sites_failed: int,
        vouchers_seen: int,
        vouchers_updated: int,
        sales_created: int,
        errors: list[str],
    ) -> None:
        self._execute(
            """
            UPDATE sync_runs SET status = ?, finished_at = ?, sites_processed = ?,
                sites_failed = ?, vouchers_seen = ?, vouchers_updated = ?,
                sales_created = ?, error_count = ?, notes = ?
            WHERE id = ?
            """,
            (
                status,
                iso_utcnow(),
                sites_processed,
                sites_failed,
                vouchers_seen,
                vouchers_updated,
                sales_created,
                len(errors),
                "; ".join(errors) if errors else None,
                run_id,
            ),
        )
        self.conn.commit()

    def latest(self) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            "SELECT * FROM sync_runs ORDER BY id DESC LIMIT 1"
        )
