from __future__ import annotations

from vouchersync.domain.models import OmadaCredentials

from ..connection import iso_utcnow
from .base import BaseRepository, new_id


class CredentialsRepository(BaseRepository):
    """Stores the controller client credentials; the newest record wins."""

    def get_omada_credentials(self) -> OmadaCredentials | None:
        row = self._fetch_one_as_dict(
            """
            SELECT omada_url, omadac_id, client_id, client_secret
            FROM omada_credentials
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """
        )
        return OmadaCredentials.from_dict(row) if row else None

    def save(
        self, credentials: OmadaCredentials, created_by: str | None = None
    ) -> str:
        credentials_id = new_id()
        self._execute(
            """
            INSERT INTO omada_credentials (
                id, omada_url, omadac_id, client_id, client_secret, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                credentials_id,
                credentials.omada_url,
                credentials.omadac_id,
                credentials.client_id,
                credentials.client_secret,
                created_by,
                iso_utcnow(),
            ),
        )
        self.conn.commit()
        return credentials_id
