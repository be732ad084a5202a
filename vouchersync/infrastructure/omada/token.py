"""Process-wide cache for the Omada access token.

One token is shared by every caller. The cached token is reused while the
current time is before ``expires_at - safety_margin``; past that point the
next caller fetches a fresh one. The lock only guards reads and writes of the
cache slot and is never held while the HTTP request is in flight, so two
callers racing on an expired token may both fetch one. The last write wins
and both tokens stay valid on the controller.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from vouchersync.domain.models import OmadaCredentials
from vouchersync.infrastructure.observability import get_logger, record_token_request

from .client import AuthError, OmadaClient

_logger = get_logger(__name__)


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float
    omadac_id: str


class TokenManager:
    """Obtain and cache access tokens for a controller tenant."""

    def __init__(
        self,
        client: OmadaClient,
        *,
        safety_margin_seconds: float = 30.0,
        default_expires_in: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._safety_margin = safety_margin_seconds
        self._default_expires_in = default_expires_in
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: CachedToken | None = None

    def _usable(self, cached: CachedToken | None, omadac_id: str | None) -> bool:
        if cached is None:
            return False
        if omadac_id is not None and cached.omadac_id != omadac_id:
            return False
        return self._clock() < cached.expires_at - self._safety_margin

    def has_valid_token(self, omadac_id: str | None = None) -> bool:
        with self._lock:
            return self._usable(self._cached, omadac_id)

    def get_valid_token(self, credentials: OmadaCredentials) -> str:
        """Return a cached token or fetch a new one.

        A failed refresh clears the cache, so a token that was about to
        expire is never handed out after the controller refused to renew it.

        Raises:
            AuthError: If the controller does not issue a token.
        """
        with self._lock:
            cached = self._cached
            if self._usable(cached, credentials.omadac_id):
                record_token_request("cached")
                return cached.access_token

        _logger.debug("Requesting new Omada access token for %s", credentials.omadac_id)
        try:
            result = self._client.request_token(credentials)
        except AuthError:
            with self._lock:
                self._cached = None
            record_token_request("error")
            raise

        expires_in = result.expires_in or self._default_expires_in
        token = CachedToken(
            access_token=result.access_token,
            expires_at=self._clock() + expires_in,
            omadac_id=credentials.omadac_id,
        )
        with self._lock:
            self._cached = token
        record_token_request("issued")
        _logger.info("Obtained Omada access token, expires in %ss", expires_in)
        return token.access_token

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        with self._lock:
            self._cached = None
        _logger.debug("Omada access token invalidated")


__all__ = ["CachedToken", "TokenManager"]
