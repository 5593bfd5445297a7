import aiohttp
import pytest
from fastapi.testclient import TestClient

from conftest import FakeHTTPSession, FakeResponse, video_session
from vidrelay.core.config import settings
from vidrelay.core.dependencies import get_http_session
from vidrelay.main import app

MiB = 1024 * 1024
DOWNLOAD_PATH = f"{settings.API_PREFIX}/download"


@pytest.fixture
def relay_client():
    """TestClient whose upstream session is a fake chosen by the test."""
    state = {}

    def _build(http: FakeHTTPSession) -> TestClient:
        app.dependency_overrides[get_http_session] = lambda: http
        state["client"] = TestClient(app)
        return state["client"]

    yield _build
    app.dependency_overrides.clear()


def test_download_streams_attachment(relay_client):
    body = bytes(range(256)) * 3 + b"x" * 232
    http = video_session(body=body)
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "video/mp4"
    assert response.headers["content-disposition"] == 'attachment; filename="clip.mp4"'
    assert response.headers["content-length"] == "1000"
    assert len(response.content) == 1000
    assert response.content == body
    assert http.methods == ["HEAD", "GET"]
    assert http.get_response.released is True


def test_download_sanitizes_filename_header(relay_client):
    http = video_session(body=b"v" * 10)
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/a/%22evil%22%0d.webm"})

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="_evil__.webm"'


def test_missing_url_is_rejected_without_upstream_call(relay_client):
    http = video_session()
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH)

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Missing url parameter"
    assert http.calls == []


def test_empty_url_is_rejected(relay_client):
    http = video_session()
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": ""})

    assert response.status_code == 400
    assert http.calls == []


@pytest.mark.parametrize(
    "url",
    ["ftp://good.example/clip.mp4", "javascript:alert(1)", "https://good.example/a.txt", "not a url"],
)
def test_invalid_urls_are_rejected_without_upstream_call(relay_client, url):
    http = video_session()
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": url})

    assert response.status_code == 400
    assert response.text
    assert http.calls == []


def test_non_video_is_rejected(relay_client):
    http = video_session(content_type="text/html")
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.status_code == 400
    assert "not a video" in response.text
    assert http.methods == ["HEAD"]


def test_declared_oversize_is_rejected(relay_client):
    http = FakeHTTPSession(
        head=FakeResponse(headers={"Content-Type": "video/mp4", "Content-Length": str(300 * MiB)}),
    )
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.status_code == 413
    assert http.methods == ["HEAD"]


def test_probe_failure_maps_to_bad_gateway(relay_client):
    http = FakeHTTPSession(head=FakeResponse(status=404))
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.status_code == 502
    assert http.methods == ["HEAD"]


def test_fetch_failure_maps_to_bad_gateway(relay_client):
    http = FakeHTTPSession(
        head=FakeResponse(headers={"Content-Type": "video/mp4"}),
        get_error=aiohttp.ClientConnectionError("reset"),
    )
    client = relay_client(http)

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.status_code == 502
    assert http.methods == ["HEAD", "GET"]


def test_unexpected_failure_is_a_generic_500(relay_client, caplog):
    http = FakeHTTPSession(head_error=RuntimeError("secret internals"))
    client = relay_client(http)

    caplog.set_level("ERROR")
    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.status_code == 500
    assert response.text == "Internal server error"
    assert "secret" not in response.text
    assert any("Unexpected failure" in record.message for record in caplog.records)


def test_responses_carry_security_headers(relay_client):
    client = relay_client(video_session())

    response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})

    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["referrer-policy"] == "no-referrer"


def test_health_check(relay_client):
    client = relay_client(FakeHTTPSession())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_overflow_without_declared_length_truncates_and_drops_upstream(monkeypatch, caplog):
    monkeypatch.setattr(settings, "MAX_DOWNLOAD_BYTES", 100)
    http = FakeHTTPSession(
        head=FakeResponse(headers={"Content-Type": "video/mp4"}),
        get=FakeResponse(headers={"Content-Type": "video/mp4"}, chunks=[b"a" * 60, b"b" * 60]),
    )
    app.dependency_overrides[get_http_session] = lambda: http
    # The abort surfaces as a server-side exception once the body has started
    client = TestClient(app, raise_server_exceptions=False)

    caplog.set_level("WARNING")
    try:
        response = client.get(DOWNLOAD_PATH, params={"url": "https://good.example/clip.mp4"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.content == b"a" * 60
    assert http.get_response.closed is True
    assert http.get_response.released is False
    warnings = [record for record in caplog.records if record.name.startswith("vidrelay") and record.levelno >= 30]
    assert len(warnings) == 1
    assert "Aborting" in warnings[0].message
