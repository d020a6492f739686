"""
Tests for the request guard: loop detection, hop depth and correlation ids.
"""

import logging

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.datastructures import Headers

from errors import ErrorCode
from guard import (
    GuardStage, RequestGuardMiddleware, RequestIdFilter, evaluate_request,
    is_self_referential, parse_hop_count, propagation_headers, request_id_var,
    resolve_request_id,
)

DOMAINS = ["api.aivelle.com"]
SIGNATURE = "AIVELLE-Agent"


def _evaluate(headers: dict, max_depth: int = 3):
    return evaluate_request(Headers(headers), DOMAINS, SIGNATURE, max_depth)


@pytest.fixture
def guarded_client():
    app = FastAPI()

    @app.get("/ping")
    def ping():
        return {"request_id": request_id_var.get()}

    @app.get("/propagate")
    def propagate(request: Request):
        return propagation_headers(request)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/boom")
    def boom():
        raise RuntimeError("secret detail")

    @app.get("/oauth/boom")
    def oauth_boom():
        raise RuntimeError("secret detail")

    app.add_middleware(RequestGuardMiddleware, domains=DOMAINS, signature=SIGNATURE,
                       max_depth=3, retry_after=60, exempt_paths=["/health"])
    return TestClient(app)


class TestPureChecks:
    """Header parsing and the loop/depth decision."""

    @pytest.mark.parametrize("value,expected", [
        (None, 0), ("", 0), ("2", 2), (" 3 ", 3), ("abc", 0), ("-4", 0),
    ])
    def test_parse_hop_count(self, value, expected):
        assert parse_hop_count(value) == expected

    def test_referer_from_own_domain(self):
        assert is_self_referential("https://api.aivelle.com/route", "", DOMAINS, SIGNATURE)

    def test_referer_from_subdomain(self):
        assert is_self_referential("https://eu.api.aivelle.com/", "", DOMAINS, SIGNATURE)

    def test_foreign_referer(self):
        assert not is_self_referential("https://notaivelle.com/api.aivelle.com", "",
                                       DOMAINS, SIGNATURE)

    def test_agent_signature(self):
        assert is_self_referential("", "AIVELLE-Agent/1.0", DOMAINS, SIGNATURE)

    def test_plain_browser(self):
        assert not is_self_referential("", "Mozilla/5.0", DOMAINS, SIGNATURE)

    def test_allows_and_increments(self):
        decision = _evaluate({"X-Hop-Count": "2"})
        assert decision.allowed
        assert decision.stage == GuardStage.DISPATCH
        assert decision.hop_count == 3

    def test_missing_header_is_first_hop(self):
        assert _evaluate({}).hop_count == 1

    def test_depth_at_limit_allowed(self):
        assert _evaluate({"X-Hop-Count": "3"}).allowed

    def test_depth_over_limit(self):
        decision = _evaluate({"X-Hop-Count": "4"})
        assert not decision.allowed
        assert decision.stage == GuardStage.DEPTH_CHECK
        assert decision.error == ErrorCode.DEPTH_EXCEEDED

    def test_loop_checked_before_depth(self):
        decision = _evaluate({"Referer": "https://api.aivelle.com/", "X-Hop-Count": "9"})
        assert decision.error == ErrorCode.LOOP_DETECTED
        assert decision.stage == GuardStage.LOOP_CHECK

    def test_request_id_echoed(self):
        assert resolve_request_id("abc-123") == "abc-123"

    @pytest.mark.parametrize("value", [None, "", "x" * 200, "bad\nid"])
    def test_request_id_generated(self, value):
        generated = resolve_request_id(value)
        assert generated != value
        assert len(generated) == 32


class TestMiddleware:
    """Behaviour through a real ASGI app."""

    def test_allowed_request_gets_headers(self, guarded_client):
        response = guarded_client.get("/ping", headers={"X-Request-ID": "req-1"})
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-1"
        assert response.headers["X-Hop-Count"] == "1"
        assert response.json() == {"request_id": "req-1"}

    def test_generated_request_id(self, guarded_client):
        response = guarded_client.get("/ping")
        assert len(response.headers["X-Request-ID"]) == 32

    def test_depth_exceeded(self, guarded_client):
        response = guarded_client.get("/ping", headers={"X-Hop-Count": "4"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "DEPTH_EXCEEDED"
        assert body["request_id"] == response.headers["X-Request-ID"]

    def test_loop_detected(self, guarded_client):
        response = guarded_client.get("/ping", headers={"Referer": "https://api.aivelle.com/x"})
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["error"] == "LOOP_DETECTED"

    def test_loop_by_user_agent(self, guarded_client):
        response = guarded_client.get("/ping", headers={"User-Agent": "AIVELLE-Agent"})
        assert response.status_code == 429

    def test_exempt_path_skips_checks(self, guarded_client):
        response = guarded_client.get("/health", headers={"X-Hop-Count": "10"})
        assert response.status_code == 200
        assert response.headers["X-Hop-Count"] == "11"

    def test_unhandled_error_json(self, guarded_client):
        response = guarded_client.get("/boom", headers={"X-Request-ID": "req-err"})
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "INTERNAL_ERROR"
        assert body["request_id"] == "req-err"
        assert "secret detail" not in response.text

    def test_unhandled_error_html_on_oauth(self, guarded_client):
        response = guarded_client.get("/oauth/boom", headers={"X-Request-ID": "req-html"})
        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/html")
        assert "req-html" in response.text
        assert "secret detail" not in response.text

    def test_rejection_html_on_oauth(self, guarded_client):
        """Browser-facing OAuth paths get an HTML rejection page, not JSON."""
        response = guarded_client.get("/oauth/boom", headers={
            "Referer": "https://api.aivelle.com/oauth/google/callback?state=x",
            "X-Request-ID": "req-loop",
        })
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.headers["content-type"].startswith("text/html")
        assert "req-loop" in response.text

    def test_context_reset_after_request(self, guarded_client):
        guarded_client.get("/ping", headers={"X-Request-ID": "req-2"})
        assert request_id_var.get() == "-"


class TestLogFilter:

    def test_filter_stamps_request_id(self):
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
        token = request_id_var.set("req-log")
        try:
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "req-log"


class TestPropagation:

    def test_outbound_headers_carry_incremented_hop(self, guarded_client):
        response = guarded_client.get("/propagate",
                                      headers={"X-Request-ID": "req-9", "X-Hop-Count": "2"})
        assert response.json() == {
            "X-Request-ID": "req-9",
            "X-Hop-Count": "3",
            "User-Agent": "AIVELLE-Agent",
        }
