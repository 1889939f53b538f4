"""Tests for correlation ID header and request logging helpers."""

from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from reverse_captcha.main import app
from reverse_captcha.middleware.logging import redact_path
from reverse_captcha.middleware.rate_limit import limiter
from reverse_captcha.routers.challenges import get_verifier


def test_correlation_id_on_success(client):
    """Test that correlation ID is included on successful responses."""
    response = client.get("/health")
    assert response.status_code == 200
    assert "X-Correlation-ID" in response.headers
    assert len(response.headers["X-Correlation-ID"]) == 8  # 4 bytes as hex


def test_correlation_id_on_404_error(client):
    """Test that correlation ID is included on 404 error responses (HTTPException)."""
    response = client.get("/captcha/stream/unknown")
    assert response.status_code == 404
    assert len(response.headers["X-Correlation-ID"]) == 8


def test_correlation_id_on_rejected_solution(client):
    response = client.post("/captcha/solve", json={"token": "unknown"})
    assert response.status_code == 404
    assert len(response.headers["X-Correlation-ID"]) == 8


def test_correlation_id_on_event_stream(client):
    token = client.post("/captcha/start").json()["token"]
    response = client.get(f"/captcha/stream/{token}")
    assert response.status_code == 200
    assert len(response.headers["X-Correlation-ID"]) == 8


def test_stream_lifetime_logged_with_correlation_id(client, fast_settings):
    """The stream_closed event carries the same correlation ID as the response header."""
    start = client.post("/captcha/start").json()

    with capture_logs() as logs:
        with client.stream("GET", start["streamUrl"]) as response:
            body = "".join(response.iter_text())
            correlation_id = response.headers["X-Correlation-ID"]

    assert "event: done" in body
    closed = [entry for entry in logs if entry["event"] == "stream_closed"]
    assert len(closed) == 1
    assert closed[0]["correlation_id"] == correlation_id
    assert closed[0]["path"] == "/captcha/stream/{token}"
    assert closed[0]["frames_sent"] >= fast_settings.ops_per_challenge
    assert closed[0]["duration_ms"] >= 0


def test_plain_responses_do_not_log_stream_closed(client):
    with capture_logs() as logs:
        client.get("/health")

    assert "stream_closed" not in [entry["event"] for entry in logs]


def test_correlation_id_on_unhandled_exception(components, monkeypatch):
    """Test that correlation ID is included on 500 responses from unhandled exceptions."""

    def raise_error(*args, **kwargs):
        raise RuntimeError("Unexpected verifier error")

    monkeypatch.setattr(components.verifier, "verify", raise_error)
    app.dependency_overrides[get_verifier] = lambda: components.verifier
    limiter.enabled = False

    try:
        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.post("/captcha/solve", json={"token": "x"})

            assert response.status_code == 500
            assert len(response.headers["X-Correlation-ID"]) == 8
            assert response.json()["detail"] == "Internal Server Error"
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True


def test_correlation_ids_unique_across_requests(client):
    """Test that each request gets a unique correlation ID."""
    response1 = client.get("/health")
    response2 = client.get("/health")

    assert response1.headers["X-Correlation-ID"] != response2.headers["X-Correlation-ID"]


class TestRedactPath:
    def test_stream_token_redacted(self):
        path = "/captcha/stream/3f2b8c1e-9a4d-4e7f-8b21-0c5d6e7f8a9b"
        assert redact_path(path) == "/captcha/stream/{token}"

    def test_paths_without_tokens_unchanged(self):
        assert redact_path("/captcha/solve") == "/captcha/solve"
        assert redact_path("/health") == "/health"
