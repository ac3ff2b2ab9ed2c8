"""
Tests for the HTTP boundary

Exercises POST /api/claims and the system endpoints through FastAPI's
TestClient, with an in-memory store and a controllable clock.
"""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from claimgate.core import ClaimService, CompactionConfig, default_catalog
from claimgate.db import ClaimStoreError, InMemoryClaimStore
from claimgate.main import create_app

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self):
        self.now = T0

    def __call__(self):
        return self.now


class BrokenCountStore(InMemoryClaimStore):
    def count(self):
        raise ClaimStoreError("database unreachable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryClaimStore()


@pytest.fixture
def client(store, clock):
    service = ClaimService(store, default_catalog(), clock=clock)
    app = create_app(claim_service=service, compaction_config=CompactionConfig(enabled=False))
    return TestClient(app)


def post_claim(client, body, address="1.2.3.4"):
    headers = {"X-Forwarded-For": address} if address else {}
    return client.post("/api/claims", json=body, headers=headers)


class TestClaimEndpoint:
    """POST /api/claims status mapping."""

    def test_accepted(self, client):
        """A first claim returns 200 with the echo data."""
        response = post_claim(client, {"optionId": "bnu", "timestamp": T0.isoformat()})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Claim validated successfully"
        assert body["data"]["address"] == "1.2.3.4"
        assert body["data"]["claimedOption"] == "bnu"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_rate_limited(self, client, clock):
        """A second claim inside the window returns 429."""
        post_claim(client, {"optionId": "bnu"})
        clock.now = T0 + timedelta(days=10)

        response = post_claim(client, {"optionId": "yilin"})
        assert response.status_code == 429
        body = response.json()
        assert body["success"] is False
        assert body["reason"] == "rate_limited"
        assert "30 days" in body["message"]

    def test_window_reopens(self, client, clock, store):
        """After the window a new claim replaces the record."""
        post_claim(client, {"optionId": "bnu"})
        clock.now = T0 + timedelta(days=31)
        assert post_claim(client, {"optionId": "yilin"}).status_code == 200
        assert store.get("1.2.3.4").claimed_option == "yilin"

    def test_unknown_option(self, client, store):
        """An unknown option returns 400 and writes nothing."""
        response = post_claim(client, {"optionId": "no-such-edition"})
        assert response.status_code == 400
        assert response.json()["reason"] == "invalid_option"
        assert store.count() == 0

    def test_missing_option(self, client):
        """A body without optionId is a 400, not a 422."""
        response = post_claim(client, {"timestamp": T0.isoformat()})
        assert response.status_code == 400
        body = response.json()
        assert body["reason"] == "validation_error"
        assert "optionId" in body["message"]

    def test_malformed_json(self, client):
        """Unparseable bodies are a 400."""
        response = client.post(
            "/api/claims",
            content=b"{not json",
            headers={"Content-Type": "application/json", "X-Forwarded-For": "1.2.3.4"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_non_string_option(self, client):
        """optionId must be a string."""
        response = post_claim(client, {"optionId": 42})
        assert response.status_code == 400

    def test_no_identity(self, client):
        """Without identity headers the claim is a 400."""
        response = post_claim(client, {"optionId": "bnu"}, address=None)
        assert response.status_code == 400
        assert response.json()["reason"] == "identity_unavailable"

    def test_header_priority(self, client, store):
        """X-Forwarded-For's first hop wins over X-Real-IP."""
        client.post(
            "/api/claims",
            json={"optionId": "bnu"},
            headers={"X-Real-IP": "5.6.7.8", "X-Forwarded-For": "9.9.9.9, 10.0.0.1"},
        )
        assert store.get("9.9.9.9") is not None
        assert store.get("5.6.7.8") is None

    def test_storage_failure(self, clock):
        """A failing store gives 500 without driver detail."""

        class FailingStore(InMemoryClaimStore):
            def claim_if_eligible(self, *args, **kwargs):
                raise ClaimStoreError("password authentication failed")

        service = ClaimService(FailingStore(), default_catalog(), clock=clock)
        client = TestClient(create_app(claim_service=service))

        response = post_claim(client, {"optionId": "bnu"})
        assert response.status_code == 500
        body = response.json()
        assert body["reason"] == "storage_error"
        assert "password" not in body["message"]

    def test_unexpected_error(self, clock):
        """Unhandled exceptions become a generic 500."""

        class ExplodingService(ClaimService):
            def submit_claim(self, *args, **kwargs):
                raise RuntimeError("boom")

        service = ExplodingService(InMemoryClaimStore(), default_catalog(), clock=clock)
        client = TestClient(create_app(claim_service=service), raise_server_exceptions=False)

        response = post_claim(client, {"optionId": "bnu"})
        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "Internal server error occurred"
        assert "boom" not in response.text


class TestMethods:
    """Preflight and unsupported methods."""

    def test_options_preflight(self, client):
        """OPTIONS always answers 200 with CORS headers."""
        response = client.options("/api/claims")
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_browser_preflight(self, client):
        """A real browser preflight is answered by the CORS middleware."""
        response = client.options(
            "/api/claims",
            headers={
                "Origin": "https://landing.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "https://landing.example.com")

    def test_browser_preflight_any_request_headers(self, client):
        """Extra request headers named by the browser are still allowed."""
        response = client.options(
            "/api/claims",
            headers={
                "Origin": "https://landing.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type, x-requested-with",
            },
        )
        assert response.status_code == 200
        assert "x-requested-with" in response.headers["access-control-allow-headers"]

    def test_browser_preflight_unlisted_origin(self, monkeypatch, store, clock):
        """A restricted origin list never turns a preflight into a 400."""
        monkeypatch.setenv("CLAIMGATE_CORS_ORIGINS", "https://books.example.com")
        service = ClaimService(store, default_catalog(), clock=clock)
        client = TestClient(create_app(claim_service=service, compaction_config=CompactionConfig(enabled=False)))

        response = client.options(
            "/api/claims",
            headers={
                "Origin": "https://elsewhere.example.net",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_head_not_allowed(self, client):
        """HEAD gets the same 405 as the other methods."""
        response = client.head("/api/claims")
        assert response.status_code == 405
        assert response.headers["allow"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE", "TRACE"])
    def test_other_methods_not_allowed(self, client, method):
        """Anything but POST/OPTIONS is a 405."""
        response = client.request(method, "/api/claims")
        assert response.status_code == 405
        assert response.headers["allow"] == "POST, OPTIONS"
        assert response.json()["success"] is False


class TestSystemEndpoints:
    """Catalog, health and metrics."""

    def test_catalog_has_no_links(self, client):
        """The public catalog lists ids and names only."""
        response = client.get("/api/catalog")
        assert response.status_code == 200
        options = response.json()
        assert len(options) == 9
        assert {"optionId", "name"} == set(options[0])
        assert "pan.baidu.com" not in response.text

    def test_health(self, client):
        """Liveness endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_detailed(self, client):
        """Detailed health reports store connectivity."""
        response = client.get("/health/detailed")
        assert response.status_code == 200
        assert response.json()["checks"]["claim_store"]["status"] == "healthy"

    def test_health_detailed_unhealthy(self, clock):
        """An unreachable store makes detailed health a 503."""
        service = ClaimService(BrokenCountStore(), default_catalog(), clock=clock)
        client = TestClient(create_app(claim_service=service))
        response = client.get("/health/detailed")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_metrics_count_outcomes(self, client, clock):
        """Metrics track accepted and rate-limited claims."""
        post_claim(client, {"optionId": "bnu"})
        post_claim(client, {"optionId": "bnu"})
        post_claim(client, {"optionId": "nope"}, address="5.6.7.8")

        metrics = client.get("/metrics").json()
        assert metrics["claims_submitted"] == 3
        assert metrics["claims_accepted"] == 1
        assert metrics["claims_rate_limited"] == 1
        assert metrics["claims_rejected"] == 1

    def test_request_id_echoed(self, client):
        """Responses carry an X-Request-ID."""
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["x-request-id"] == "abc-123"


class TestLogging:
    """Logging configuration and formatting."""

    def test_config_from_env(self, monkeypatch):
        """Level and format come from the environment."""
        from claimgate.observability import LoggingConfig

        monkeypatch.setenv("CLAIMGATE_LOG_LEVEL", "debug")
        monkeypatch.setenv("CLAIMGATE_LOG_FORMAT", "json")
        config = LoggingConfig.from_env()
        assert config.level == logging.DEBUG
        assert config.json_format is True

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        """A bad level name does not break startup."""
        from claimgate.observability import LoggingConfig

        monkeypatch.setenv("CLAIMGATE_LOG_LEVEL", "chatty")
        assert LoggingConfig.from_env().level == logging.INFO

    def test_structured_formatter_includes_fields(self):
        """Extra fields and the request ID land in the JSON line."""
        from claimgate.observability import StructuredFormatter, request_id_var

        record = logging.LogRecord("claimgate.test", logging.INFO, __file__, 1, "Claim rejected", None, None)
        record.reason = "rate_limited"
        token = request_id_var.set("req-1")
        try:
            line = json.loads(StructuredFormatter().format(record))
        finally:
            request_id_var.reset(token)

        assert line["message"] == "Claim rejected"
        assert line["reason"] == "rate_limited"
        assert line["request_id"] == "req-1"
