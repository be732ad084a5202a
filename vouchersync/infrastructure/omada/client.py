"""HTTP client for the Omada SDN controller Open API.

The controller authenticates with a client-credentials grant and expects the
resulting token in an ``Authorization: AccessToken=<token>`` header (a plain
``Bearer`` prefix is rejected). Every response is wrapped in an
``{errorCode, msg, result}`` envelope; an HTTP error and a non-zero
``errorCode`` are treated the same way.

Self-signed controller certificates are common on site installs, so TLS
verification can be switched off; callers derive that from the runtime
environment and production keeps strict verification.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import requests
from pydantic import ValidationError
from requests import Response, Session

from vouchersync import __version__
from vouchersync.app.config import SyncSettings
from vouchersync.domain.models import OmadaCredentials
from vouchersync.infrastructure.observability import get_logger, record_api_request

from .schemas import OmadaEnvelope, PageResult, TokenResult

_logger = get_logger(__name__)

# Open API error codes meaning the access token is no longer accepted.
TOKEN_EXPIRED_CODE = -44112
TOKEN_INVALID_CODE = -44113
TOKEN_ERROR_CODES = frozenset({TOKEN_EXPIRED_CODE, TOKEN_INVALID_CODE})


class AuthError(Exception):
    """Raised when an access token cannot be obtained from the controller."""

    def __init__(
        self, message: str, *, status: int | None = None, app_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.app_code = app_code


class RemoteApiError(Exception):
    """Raised when an Open API call fails at the HTTP or application level."""

    def __init__(
        self, message: str, *, status: int | None = None, app_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.app_code = app_code
        self.message = message

    @property
    def is_token_error(self) -> bool:
        """True when retrying with a fresh token may succeed."""
        return self.status == 401 or self.app_code in TOKEN_ERROR_CODES

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.app_code is not None:
            parts.append(f"errorCode={self.app_code}")
        return " ".join(parts)


@dataclass
class Page:
    """One page of a paginated Open API listing."""

    items: list[dict[str, Any]]
    current_page: int
    current_size: int
    total_rows: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_more(self) -> bool:
        return self.current_page * self.current_size < self.total_rows


class OmadaClient:
    """Thin wrapper around :class:`requests.Session` for the Open API."""

    def __init__(
        self,
        *,
        verify_tls: bool = True,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 3,
        backoff_base_seconds: float = 0.5,
        session: Session | None = None,
    ) -> None:
        self.verify_tls = verify_tls
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_base_seconds = max(0.0, backoff_base_seconds)
        self.session = session or requests.Session()
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": f"vouchersync/{__version__}",
        }
        if not verify_tls:
            _logger.warning(
                "TLS certificate verification is disabled for Omada requests"
            )

    @classmethod
    def from_settings(
        cls, settings: SyncSettings, session: Session | None = None
    ) -> "OmadaClient":
        return cls(
            verify_tls=settings.verify_tls,
            timeout_seconds=settings.request_timeout_seconds,
            retry_attempts=settings.retry_attempts,
            backoff_base_seconds=settings.retry_backoff_seconds,
            session=session,
        )

    # -------------------- URL helpers --------------------
    @staticmethod
    def token_url(credentials: OmadaCredentials) -> str:
        return f"{credentials.base_url}/openapi/authorize/token?grant_type=client_credentials"

    @staticmethod
    def _site_url(credentials: OmadaCredentials, omada_site_id: str) -> str:
        return (
            f"{credentials.base_url}/openapi/v1/{credentials.omadac_id}"
            f"/sites/{omada_site_id}"
        )

    def voucher_groups_url(
        self,
        credentials: OmadaCredentials,
        omada_site_id: str,
        *,
        page: int,
        page_size: int,
    ) -> str:
        query = urlencode({"page": page, "pageSize": page_size})
        return f"{self._site_url(credentials, omada_site_id)}/hotspot/voucher-groups?{query}"

    def voucher_group_url(
        self,
        credentials: OmadaCredentials,
        omada_site_id: str,
        group_id: str,
        *,
        page: int,
        page_size: int,
        status_filter: int | None = None,
    ) -> str:
        params: dict[str, Any] = {"page": page, "pageSize": page_size}
        if status_filter is not None:
            params["filters.status"] = int(status_filter)
        return (
            f"{self._site_url(credentials, omada_site_id)}/hotspot/voucher-groups/"
            f"{group_id}?{urlencode(params)}"
        )

    def voucher_url(
        self, credentials: OmadaCredentials, omada_site_id: str, voucher_id: str
    ) -> str:
        return f"{self._site_url(credentials, omada_site_id)}/hotspot/vouchers/{voucher_id}"

    # -------------------- transport --------------------
    def _backoff_delay(self, attempt: int) -> float:
        return self.backoff_base_seconds * (2**attempt)

    def _send(
        self, method: str, url: str, *, endpoint: str, **kwargs: Any
    ) -> Response:
        """Send a request, retrying only on connection-level failures."""
        headers = dict(self.headers)
        headers.update(kwargs.pop("headers", None) or {})
        for attempt in range(self.retry_attempts):
            started = time.perf_counter()
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.timeout_seconds,
                    verify=self.verify_tls,
                    **kwargs,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                record_api_request(endpoint, "error", time.perf_counter() - started)
                if attempt >= self.retry_attempts - 1:
                    raise
                _logger.warning(
                    "Omada %s %s failed (%s); retrying (%d/%d)",
                    method,
                    endpoint,
                    exc,
                    attempt + 1,
                    self.retry_attempts,
                )
                time.sleep(self._backoff_delay(attempt))
                continue
            record_api_request(
                endpoint, str(response.status_code), time.perf_counter() - started
            )
            return response
        raise RuntimeError("unreachable: retry loop exited without a response")

    @staticmethod
    def _parse_envelope(response: Response) -> OmadaEnvelope:
        try:
            return OmadaEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise RemoteApiError(
                f"Malformed Omada response: {exc}", status=response.status_code
            ) from exc

    def _call(self, method: str, url: str, *, endpoint: str, token: str) -> Any:
        try:
            response = self._send(
                method,
                url,
                endpoint=endpoint,
                headers={"Authorization": f"AccessToken={token}"},
            )
        except requests.RequestException as exc:
            raise RemoteApiError(f"Omada request failed: {exc}") from exc
        if not response.ok:
            raise RemoteApiError(
                f"Omada {endpoint} request failed: {response.text[:200]}",
                status=response.status_code,
            )
        envelope = self._parse_envelope(response)
        if envelope.error_code != 0:
            raise RemoteApiError(
                envelope.msg or "Omada API error",
                status=response.status_code,
                app_code=envelope.error_code,
            )
        return envelope.result

    # -------------------- API --------------------
    def request_token(self, credentials: OmadaCredentials) -> TokenResult:
        """Run the client-credentials grant.

        Raises:
            AuthError: On transport failure, non-2xx status, non-zero
                ``errorCode`` or a body without an access token.
        """
        body = {
            "omadacId": credentials.omadac_id,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        }
        try:
            response = self._send(
                "POST", self.token_url(credentials), endpoint="token", json=body
            )
        except requests.RequestException as exc:
            raise AuthError(f"Token request failed: {exc}") from exc
        if not response.ok:
            raise AuthError(
                f"Token request failed: {response.status_code} - {response.text[:200]}",
                status=response.status_code,
            )
        try:
            envelope = self._parse_envelope(response)
        except RemoteApiError as exc:
            raise AuthError(str(exc), status=response.status_code) from exc
        if envelope.error_code != 0:
            raise AuthError(
                f"Omada token error: {envelope.msg or 'Authentication failed'}",
                status=response.status_code,
                app_code=envelope.error_code,
            )
        try:
            return TokenResult.model_validate(envelope.result or {})
        except ValidationError as exc:
            raise AuthError(
                "No access token received from Omada API", status=response.status_code
            ) from exc

    def fetch_page(self, url: str, token: str, *, endpoint: str = "page") -> Page:
        """GET one page of a paginated listing.

        Raises:
            RemoteApiError: On any failure, including a ``result`` that does
                not look like a page.
        """
        result = self._call("GET", url, endpoint=endpoint, token=token)
        try:
            parsed = PageResult.model_validate(result or {})
        except ValidationError as exc:
            raise RemoteApiError(f"Malformed Omada page: {exc}") from exc
        return Page(
            items=parsed.data,
            current_page=parsed.current_page,
            current_size=parsed.current_size,
            total_rows=parsed.total_rows,
            metadata=parsed.metadata(),
        )

    def delete_voucher(
        self,
        credentials: OmadaCredentials,
        omada_site_id: str,
        voucher_id: str,
        token: str,
    ) -> None:
        self._call(
            "DELETE",
            self.voucher_url(credentials, omada_site_id, voucher_id),
            endpoint="delete_voucher",
            token=token,
        )


__all__ = [
    "AuthError",
    "OmadaClient",
    "Page",
    "RemoteApiError",
    "TOKEN_ERROR_CODES",
]
