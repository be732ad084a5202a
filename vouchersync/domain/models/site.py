"""Site and controller credential records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .voucher import parse_timestamp

SITE_STATUS_ACTIVE = "active"


@dataclass
class Site:
    """A hotspot site, optionally linked to an Omada site id."""

    id: str
    name: str
    omada_site_id: str | None = None
    status: str = SITE_STATUS_ACTIVE
    location: str | None = None
    last_sync: datetime | None = None

    @property
    def is_syncable(self) -> bool:
        """Only active sites that exist on the controller take part in a sweep."""
        return self.status == SITE_STATUS_ACTIVE and bool(self.omada_site_id)

    @classmethod
    def from_dict(cls, data: dict) -> "Site":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            omada_site_id=data.get("omada_site_id") or None,
            status=str(data.get("status") or SITE_STATUS_ACTIVE),
            location=data.get("location"),
            last_sync=parse_timestamp(data.get("last_sync")),
        )


@dataclass(frozen=True)
class OmadaCredentials:
    """Client-credentials bundle for one Omada controller tenant."""

    omada_url: str
    omadac_id: str
    client_id: str
    client_secret: str = field(repr=False)

    @property
    def base_url(self) -> str:
        return self.omada_url.rstrip("/")

    @classmethod
    def from_dict(cls, data: dict) -> "OmadaCredentials":
        return cls(
            omada_url=str(data["omada_url"]),
            omadac_id=str(data["omadac_id"]),
            client_id=str(data["client_id"]),
            client_secret=str(data["client_secret"]),
        )


__all__ = ["OmadaCredentials", "SITE_STATUS_ACTIVE", "Site"]
