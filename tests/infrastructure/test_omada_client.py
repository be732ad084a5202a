import pytest
import requests

from vouchersync import __version__
from vouchersync.app.config import SyncSettings
from vouchersync.infrastructure.observability import get_metrics_summary
from vouchersync.infrastructure.omada import AuthError, OmadaClient, RemoteApiError


class RecordingSession:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(session, **kwargs) -> OmadaClient:
    kwargs.setdefault("retry_attempts", 1)
    kwargs.setdefault("backoff_base_seconds", 0.0)
    return OmadaClient(session=session, **kwargs)


def test_fetch_page_uses_access_token_header(omada_response) -> None:
    session = RecordingSession(
        omada_response({"totalRows": 1, "currentPage": 1, "currentSize": 100, "data": [{"id": 1}]})
    )
    client = _client(session)

    page = client.fetch_page("https://omada.test/x?page=1&pageSize=100", "abc")

    assert session.calls[0]["headers"]["Authorization"] == "AccessToken=abc"
    assert page.items == [{"id": 1}]
    assert not page.has_more


def test_fetch_page_maps_http_errors(omada_response) -> None:
    client = _client(RecordingSession(omada_response(status=500)))
    with pytest.raises(RemoteApiError) as excinfo:
        client.fetch_page("https://omada.test/x", "abc")
    assert excinfo.value.status == 500
    assert not excinfo.value.is_token_error


def test_fetch_page_maps_application_errors(omada_response) -> None:
    client = _client(RecordingSession(omada_response(error_code=-44112, msg="Token expired")))
    with pytest.raises(RemoteApiError) as excinfo:
        client.fetch_page("https://omada.test/x", "abc")
    assert excinfo.value.app_code == -44112
    assert excinfo.value.is_token_error
    assert "Token expired" in str(excinfo.value)


def test_fetch_page_rejects_malformed_result(omada_response) -> None:
    client = _client(RecordingSession(omada_response({"data": []})))
    with pytest.raises(RemoteApiError):
        client.fetch_page("https://omada.test/x", "abc")


def test_request_token_posts_client_credentials(credentials, omada_response) -> None:
    session = RecordingSession(omada_response({"accessToken": "tok", "expiresIn": 7200}))
    client = _client(session)

    result = client.request_token(credentials)

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == (
        "https://omada.test/openapi/authorize/token?grant_type=client_credentials"
    )
    assert call["json"] == {
        "omadacId": "omadac-1",
        "client_id": "client-id",
        "client_secret": "client-secret",
    }
    assert result.access_token == "tok"
    assert result.expires_in == 7200


@pytest.mark.parametrize(
    "response_kwargs",
    [
        {"status": 401},
        {"error_code": -44106, "msg": "Invalid client"},
        {"result": {"expiresIn": 60}},
    ],
)
def test_request_token_failures_raise_auth_error(credentials, omada_response, response_kwargs) -> None:
    client = _client(RecordingSession(omada_response(**response_kwargs)))
    with pytest.raises(AuthError):
        client.request_token(credentials)


def test_connection_errors_are_retried(credentials, omada_response) -> None:
    session = RecordingSession(
        requests.ConnectionError("reset"),
        omada_response({"accessToken": "tok"}),
    )
    client = _client(session, retry_attempts=2)

    assert client.request_token(credentials).access_token == "tok"
    assert len(session.calls) == 2
    counters = get_metrics_summary()["counters"]["omada_api_requests_total"]
    assert counters["endpoint=token,status=error"] == 1
    assert counters["endpoint=token,status=200"] == 1


def test_verify_flag_is_passed_to_requests(omada_response) -> None:
    session = RecordingSession(
        omada_response({"totalRows": 0, "currentPage": 1, "currentSize": 10, "data": []})
    )
    _client(session, verify_tls=False).fetch_page("https://omada.test/x", "abc")
    assert session.calls[0]["verify"] is False


def test_voucher_group_url(credentials) -> None:
    client = _client(RecordingSession())
    url = client.voucher_group_url(credentials, "site-9", "g-1", page=2, page_size=1000)
    assert url == (
        "https://omada.test/openapi/v1/omadac-1/sites/site-9/hotspot/voucher-groups/g-1"
        "?page=2&pageSize=1000"
    )


def test_from_settings_applies_transport_options(omada_response) -> None:
    session = RecordingSession(
        omada_response({"totalRows": 0, "currentPage": 1, "currentSize": 10, "data": []})
    )
    settings = SyncSettings(
        environment="test",
        request_timeout_seconds=7.5,
        retry_attempts=2,
        retry_backoff_seconds=0.0,
        verify_tls=False,
    )

    client = OmadaClient.from_settings(settings, session=session)
    client.fetch_page("https://omada.test/x", "abc")

    assert client.retry_attempts == 2
    call = session.calls[0]
    assert call["timeout"] == 7.5
    assert call["verify"] is False
    assert call["headers"]["User-Agent"] == f"vouchersync/{__version__}"
