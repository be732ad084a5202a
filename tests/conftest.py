import json
import re
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from requests import Response

from vouchersync.app.config import SyncSettings
from vouchersync.domain.models import OmadaCredentials
from vouchersync.infrastructure.db import ensure_schema, get_connection
from vouchersync.infrastructure.db.repositories import CredentialsRepository
from vouchersync.infrastructure.observability import get_registry
from vouchersync.infrastructure.omada import OmadaClient, TokenManager
from vouchersync.services import VoucherSyncService, sqlite_connection_factory

OMADA_URL = "https://omada.test"
OMADAC_ID = "omadac-1"


def make_response(payload, status: int = 200) -> Response:
    resp = Response()
    resp._content = json.dumps(payload).encode("utf-8")
    resp.status_code = status
    resp.headers["Content-Type"] = "application/json"
    return resp


def omada_payload(result=None, error_code: int = 0, msg: str = "Success.") -> dict:
    return {"errorCode": error_code, "msg": msg, "result": result}


_SITE_PATH = re.compile(
    r"^/openapi/v1/(?P<omadac>[^/]+)/sites/(?P<site>[^/]+)/hotspot/(?P<rest>.+)$"
)


class FakeController:
    """In-memory Omada controller that answers like the Open API.

    Plugs into :class:`OmadaClient` as its ``session``; every request is
    recorded in :attr:`calls`.
    """

    def __init__(self) -> None:
        self.groups: dict[str, list[dict]] = {}
        self.vouchers: dict[str, list[dict]] = {}
        self.group_meta: dict[str, dict] = {}
        self.failing_sites: set[str] = set()
        self.failing_groups: set[str] = set()
        self.failing_pages: dict[str, int] = {}
        self.calls: list[tuple[str, str, dict]] = []
        self.deleted: list[str] = []
        self.token_requests = 0
        self.token_error: tuple[int, str] | None = None
        self.expires_in: int | None = 7200
        self.current_token = "token-1"

    # -- test setup helpers --------------------------------------------
    def add_group(self, omada_site_id: str, group: dict, vouchers: list[dict] | None = None):
        self.groups.setdefault(omada_site_id, []).append(group)
        self.vouchers[str(group["id"])] = list(vouchers or [])
        return group

    def rotate_token(self) -> None:
        """Invalidate the issued token as if it expired on the controller."""
        number = int(self.current_token.rsplit("-", 1)[1]) + 1
        self.current_token = f"token-{number}"

    def requests_to(self, fragment: str) -> list[str]:
        return [url for _method, url, _headers in self.calls if fragment in url]

    # -- transport -------------------------------------------------------
    def request(self, method, url, headers=None, json=None, timeout=None, verify=None, **_kw):
        self.calls.append((method, url, dict(headers or {})))
        parsed = urlparse(url)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        if parsed.path == "/openapi/authorize/token":
            return self._token(json or {})

        match = _SITE_PATH.match(parsed.path)
        if match is None:
            return make_response({"message": "not found"}, status=404)
        if (headers or {}).get("Authorization") != f"AccessToken={self.current_token}":
            return make_response(omada_payload(error_code=-44112, msg="Token expired."))

        site = match.group("site")
        rest = match.group("rest")
        if rest == "voucher-groups":
            if site in self.failing_sites:
                return make_response({"message": "boom"}, status=500)
            return self._paginate(self.groups.get(site, []), query, endpoint="voucher-groups")
        if rest.startswith("voucher-groups/"):
            group_id = rest.split("/", 1)[1]
            if group_id in self.failing_groups:
                return make_response(omada_payload(error_code=-1, msg="Group failure"))
            rows = self.vouchers.get(group_id, [])
            if "filters.status" in query:
                rows = [v for v in rows if str(v["status"]) == query["filters.status"]]
            return self._paginate(
                rows, query, endpoint=group_id, extra=self.group_meta.get(group_id, {})
            )
        if rest.startswith("vouchers/") and method == "DELETE":
            voucher_id = rest.split("/", 1)[1]
            self.deleted.append(voucher_id)
            for rows in self.vouchers.values():
                rows[:] = [v for v in rows if str(v["id"]) != voucher_id]
            return make_response(omada_payload())
        return make_response({"message": "not found"}, status=404)

    def _token(self, body: dict) -> Response:
        self.token_requests += 1
        if self.token_error is not None:
            code, msg = self.token_error
            return make_response(omada_payload(error_code=code, msg=msg))
        assert body.get("omadacId") and body.get("client_id") and body.get("client_secret")
        result = {"accessToken": self.current_token, "tokenType": "bearer"}
        if self.expires_in is not None:
            result["expiresIn"] = self.expires_in
        return make_response(omada_payload(result))

    def _paginate(self, rows: list[dict], query: dict, *, endpoint: str, extra=None) -> Response:
        page = int(query.get("page", 1))
        size = int(query.get("pageSize", 10))
        if self.failing_pages.get(endpoint) == page:
            return make_response({"message": "page failure"}, status=502)
        start = (page - 1) * size
        result = {
            "totalRows": len(rows),
            "currentPage": page,
            "currentSize": size,
            "data": rows[start : start + size],
        }
        result.update(extra or {})
        return make_response(omada_payload(result))


def remote_voucher(code: str, status: int, voucher_id: str | None = None, **extra) -> dict:
    payload = {"id": voucher_id or f"rv-{code}", "code": code, "status": status}
    payload.update(extra)
    return payload


@pytest.fixture(autouse=True)
def reset_metrics():
    get_registry().reset()
    yield
    get_registry().reset()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "vouchersync.db"


@pytest.fixture
def connection_factory(db_path: Path):
    return sqlite_connection_factory(db_path)


@pytest.fixture
def conn(db_path: Path):
    with get_connection(db_path) as connection:
        ensure_schema(connection)
        yield connection


@pytest.fixture
def credentials() -> OmadaCredentials:
    return OmadaCredentials(
        omada_url=OMADA_URL + "/",
        omadac_id=OMADAC_ID,
        client_id="client-id",
        client_secret="client-secret",
    )


@pytest.fixture
def stored_credentials(conn, credentials) -> OmadaCredentials:
    CredentialsRepository(conn).save(credentials, created_by="master")
    return credentials


@pytest.fixture
def controller() -> FakeController:
    return FakeController()


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        environment="test",
        retry_attempts=1,
        retry_backoff_seconds=0.0,
        verify_tls=False,
    )


@pytest.fixture
def client(controller: FakeController, settings: SyncSettings) -> OmadaClient:
    return OmadaClient.from_settings(settings, session=controller)


@pytest.fixture
def tokens(client: OmadaClient) -> TokenManager:
    return TokenManager(client)


@pytest.fixture
def sync_service(connection_factory, client, tokens, settings) -> VoucherSyncService:
    return VoucherSyncService(connection_factory, client, tokens, settings=settings)


@pytest.fixture
def fake_controller_cls():
    return FakeController


@pytest.fixture
def omada_response():
    """Build a ``requests.Response`` carrying an Open API envelope."""

    def _build(result=None, *, error_code: int = 0, msg: str = "Success.", status: int = 200):
        return make_response(omada_payload(result, error_code, msg), status=status)

    return _build


@pytest.fixture
def voucher_payload():
    return remote_voucher
