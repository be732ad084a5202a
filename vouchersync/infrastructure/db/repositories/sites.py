from __future__ import annotations

from vouchersync.domain.models import SITE_STATUS_ACTIVE, Site

from ..connection import iso_utcnow
from .base import BaseRepository, new_id


class SiteRepository(BaseRepository):
    def get_all_sites(self) -> list[Site]:
        rows = self._fetch_all_as_dicts(
            "SELECT id, name, location, omada_site_id, status, last_sync "
            "FROM sites ORDER BY created_at, rowid"
        )
        return [Site.from_dict(row) for row in rows]

    def get_by_id(self, site_id: str) -> Site | None:
        row = self._fetch_one_as_dict(
            "SELECT id, name, location, omada_site_id, status, last_sync "
            "FROM sites WHERE id = ?",
            (site_id,),
        )
        return Site.from_dict(row) if row else None

    def create(
        self,
        name: str,
        *,
        omada_site_id: str | None = None,
        status: str = SITE_STATUS_ACTIVE,
        location: str | None = None,
        site_id: str | None = None,
    ) -> Site:
        site_id = site_id or new_id()
        self._execute(
            """
            INSERT INTO sites (id, name, location, omada_site_id, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (site_id, name, location, omada_site_id, status, iso_utcnow()),
        )
        self.conn.commit()
        return Site(
            id=site_id,
            name=name,
            omada_site_id=omada_site_id,
            status=status,
            location=location,
        )

    def mark_synced(self, site_id: str) -> None:
        self._execute(
            "UPDATE sites SET last_sync = ? WHERE id = ?", (iso_utcnow(), site_id)
        )
        self.conn.commit()
