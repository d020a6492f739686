"""
Tests for the HTTP surface: routing endpoints, guard integration, OAuth pages.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

import auth
from config import LOOP_RETRY_AFTER_SECONDS, MAX_INPUT_LENGTH
from core import FlowManager, RoutingRuleStore
from kv import MemoryKVStore
from main import create_app
from oauth import create_providers
from profile_config import Profile, ProviderConfig


def _profile_with_clients() -> Profile:
    profile = Profile()
    profile.providers.google = ProviderConfig(client_id="gid", client_secret="gsecret",
                                              scope="email")
    profile.providers.notion = ProviderConfig(client_id="nid", client_secret="nsecret")
    return profile


@pytest.fixture
def client(rule_store, dispatcher, flow_manager):
    kv_store = MemoryKVStore()
    providers = create_providers(
        _profile_with_clients(), kv_store,
        transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    app = create_app(rule_store=rule_store, dispatcher=dispatcher,
                     flow_manager=flow_manager, kv_store=kv_store,
                     oauth_providers=providers)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def missing_rules_client(tmp_path, dispatcher):
    store = RoutingRuleStore(tmp_path / "absent.json")
    kv_store = MemoryKVStore()
    app = create_app(rule_store=store, dispatcher=dispatcher,
                     flow_manager=FlowManager(store, dispatcher), kv_store=kv_store,
                     oauth_providers=create_providers(Profile(), kv_store))
    with TestClient(app) as test_client:
        yield test_client


class TestRouteWorkflow:
    """POST / and POST /api/route-workflow."""

    def test_prompt_dispatch(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "please add a task"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["intent"] == "create.task"
        assert body["result"]["input"] == "please add a task"

    def test_root_alias(self, client):
        response = client.post("/", json={"prompt": "할 일을 추가해줘"})
        assert response.status_code == 200
        assert response.json()["intent"] == "create.task"

    def test_direct_intent(self, client):
        response = client.post("/api/route-workflow",
                               json={"intent": "create.contentDraft", "context": {"input": "x"}})
        assert response.status_code == 200
        assert response.json()["result"]["style"] == "object"

    def test_request_metadata_in_context(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "add a task"},
                               headers={"X-Request-ID": "req-42", "X-Hop-Count": "1"})
        context = response.json()["context"]
        assert context["requestId"] == "req-42"
        assert context["hopCount"] == 2

    def test_fallback(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "안녕하세요"})
        assert response.status_code == 200
        assert response.json()["isFallback"] is True

    @pytest.mark.parametrize("payload", [{}, {"prompt": ""}, {"prompt": "   "}])
    def test_invalid_input(self, client, payload):
        response = client.post("/api/route-workflow", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"

    def test_prompt_over_length_limit(self, client):
        response = client.post("/api/route-workflow",
                               json={"prompt": "task " * (MAX_INPUT_LENGTH // 5 + 1)})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"

    def test_malformed_json(self, client):
        response = client.post("/api/route-workflow", content=b"{nope",
                               headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"

    def test_unknown_intent(self, client):
        response = client.post("/api/route-workflow", json={"intent": "nope.nothing"})
        assert response.status_code == 404
        assert response.json()["error"] == "NO_INTENT_MATCHED"

    def test_unimplemented_workflow(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "book a meeting"})
        assert response.status_code == 501
        assert response.json()["error"] == "WORKFLOW_NOT_FOUND"

    def test_workflow_error(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "explode"})
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "WORKFLOW_EXECUTION_ERROR"
        assert body["request_id"] == response.headers["X-Request-ID"]

    def test_missing_routing_table(self, missing_rules_client):
        response = missing_rules_client.post("/api/route-workflow", json={"prompt": "task"})
        assert response.status_code == 503
        assert response.json()["error"] == "CONFIG_NOT_FOUND"


class TestGuardIntegration:
    """The request guard wraps every route."""

    def test_correlation_headers(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "add a task"},
                               headers={"X-Request-ID": "abc", "X-Hop-Count": "2"})
        assert response.headers["X-Request-ID"] == "abc"
        assert response.headers["X-Hop-Count"] == "3"

    def test_depth_exceeded(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "add a task"},
                               headers={"X-Hop-Count": "4"})
        assert response.status_code == 400
        assert response.json()["error"] == "DEPTH_EXCEEDED"

    def test_self_referral(self, client):
        response = client.post("/api/route-workflow", json={"prompt": "add a task"},
                               headers={"Referer": "https://api.aivelle.com/api/route-workflow"})
        assert response.status_code == 429
        assert response.headers["Retry-After"] == str(LOOP_RETRY_AFTER_SECONDS)
        assert response.json()["error"] == "LOOP_DETECTED"

    def test_security_headers(self, client):
        response = client.get("/api/status")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestCatalogue:
    """Health, status and intent listings."""

    def test_health_is_exempt(self, client):
        response = client.get("/health", headers={"X-Hop-Count": "50"})
        assert response.status_code == 200
        assert response.json()["routing"] == "ready"

    def test_status(self, client):
        body = client.get("/api/status").json()
        assert body["status"] == "ready"
        assert body["enabledScenarios"] == 5

    def test_intents(self, client):
        body = client.get("/api/intents").json()
        assert body["count"] == 5
        assert body["intents"][0]["intent"] == "create.task"

    def test_intents_by_category(self, client):
        body = client.get("/api/intents/create").json()
        assert [i["intent"] for i in body["intents"]] == ["create.task", "create.contentDraft"]

    def test_intents_without_table(self, missing_rules_client):
        response = missing_rules_client.get("/api/intents")
        assert response.status_code == 503

    def test_reload_requires_key(self, client):
        assert client.post("/api/routing/reload").status_code == 401

    def test_reload(self, client, rule_store):
        rule_store.load()
        response = client.post("/api/routing/reload",
                               headers={"X-API-Key": auth.AIVELLE_API_KEY})
        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert rule_store.load_count == 2


class TestOAuthRoutes:
    """Provider pages served through the app."""

    def test_landing_page(self, client):
        response = client.get("/oauth/google")
        assert response.status_code == 200
        assert "Continue with Google" in response.text

    def test_redirect(self, client):
        response = client.get("/oauth/notion?redirect=1", follow_redirects=False)
        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert location.netloc == "api.notion.com"
        assert "redirect_uri=http%3A%2F%2Ftestserver%2Foauth%2Fnotion%2Fcallback" in location.query

    def test_unknown_provider(self, client):
        assert client.get("/oauth/myspace").status_code == 404

    def test_unconfigured_provider(self, missing_rules_client):
        response = missing_rules_client.get("/oauth/google")
        assert response.status_code == 500
        assert "not configured" in response.text

    def test_callback_invalid_state(self, client):
        response = client.get("/oauth/google/callback?code=c&state=forged")
        assert response.status_code == 400
        assert "Invalid state parameter" in response.text

    def test_error_page_retry_is_not_a_loop(self, client):
        """The error page withholds the Referer, so "Try Again" reaches the landing page."""
        failed = client.get("/oauth/google/callback?code=c&state=forged")
        assert failed.headers["Referrer-Policy"] == "no-referrer"
        assert 'href="/oauth/google"' in failed.text

        retry = client.get("/oauth/google")
        assert retry.status_code == 200
        assert "Continue with Google" in retry.text

    def test_callback_forwards_correlation_headers(self, rule_store, dispatcher, flow_manager):
        seen = []

        def provider(request):
            seen.append(request)
            return httpx.Response(503)

        kv_store = MemoryKVStore()
        providers = create_providers(_profile_with_clients(), kv_store,
                                     transport=httpx.MockTransport(provider),
                                     attempts=1)
        app = create_app(rule_store=rule_store, dispatcher=dispatcher,
                         flow_manager=flow_manager, kv_store=kv_store,
                         oauth_providers=providers)
        with TestClient(app) as test_client:
            landing = test_client.get("/oauth/google?redirect=1", follow_redirects=False)
            state = parse_qs(urlparse(landing.headers["location"]).query)["state"][0]
            response = test_client.get(f"/oauth/google/callback?code=c&state={state}",
                                       headers={"X-Request-ID": "req-cb", "X-Hop-Count": "1"})

        assert response.status_code == 502
        assert seen[0].headers["X-Request-ID"] == "req-cb"
        assert seen[0].headers["X-Hop-Count"] == "2"

    def test_callback_provider_error(self, client):
        response = client.get("/oauth/google/callback?error=access_denied")
        assert response.status_code == 400
        assert "access_denied" in response.text

    def test_status_requires_key(self, client):
        assert client.get("/api/oauth/google/status?user=a@b.c").status_code == 401

    def test_status_not_connected(self, client):
        response = client.get("/api/oauth/google/status?user=a@b.c",
                              headers={"X-API-Key": auth.AIVELLE_API_KEY})
        assert response.status_code == 200
        assert response.json()["connected"] is False
