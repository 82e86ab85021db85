"""
Unit tests for Entitlements main service.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from service_entitlements.app.cache.redis_store import RedisStore
from service_entitlements.app.cache.store import InMemoryStore
from service_entitlements.app.main import EntitlementsService, create_app
from shared.config import get_config
from shared.test_helpers import access_payload


def memory_config(**overrides):
    return get_config(
        "entitlements",
        8011,
        cache_backend="memory",
        checkout_success_url="https://app.example/billing/success",
        checkout_cancel_url="https://app.example/billing/cancel",
        **overrides
    )


class TestEntitlementsService:
    """Test cases for EntitlementsService."""

    @pytest.fixture
    def entitlements_service(self, store, authority_client):
        """Create EntitlementsService instance."""
        return EntitlementsService(config=memory_config(), store=store, authority=authority_client)

    @pytest.fixture
    def app(self, entitlements_service):
        """Create FastAPI app instance."""
        return entitlements_service.app

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app)

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "entitlements"
        assert data["message"] == "Entitlement Resolution Service"
        assert "resolution" in data["capabilities"]
        assert "reverse_trial" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "entitlements"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"authority": "closed", "cache": "memory"}

    @patch('service_entitlements.app.main.EntitlementsService._check_dependencies')
    def test_health_with_dependencies(self, mock_check_deps, client):
        """Test health endpoint with dependency checks."""
        mock_check_deps.return_value = {
            "authority": "open",
            "redis": "ok"
        }

        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["dependencies"]["authority"] == "open"
        assert data["dependencies"]["redis"] == "ok"
        assert data["status"] == "degraded"

    @patch('service_entitlements.app.main.EntitlementsService._check_dependencies')
    def test_health_dependency_failure(self, mock_check_deps, client):
        """Test health endpoint when the dependency check itself fails."""
        mock_check_deps.side_effect = RuntimeError("redis exploded")

        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_service_initialization(self, entitlements_service):
        """Test service initialization."""
        assert entitlements_service.service_name == "entitlements"
        assert entitlements_service.port == 8011
        assert entitlements_service.resolver is not None
        assert entitlements_service.mutations is not None
        assert entitlements_service.cache is not None
        assert entitlements_service.redis_store is None

    def test_redis_backend_selected_by_config(self):
        """Test the default cache backend is Redis."""
        service = EntitlementsService(config=get_config("entitlements", 8011, cache_backend="redis"))
        assert isinstance(service.redis_store, RedisStore)
        assert service.cache.store is service.redis_store

    def test_memory_backend_selected_by_config(self):
        """Test the in-memory backend needs no Redis."""
        service = EntitlementsService(config=memory_config())
        assert service.redis_store is None
        assert isinstance(service.cache.store, InMemoryStore)

    @patch("service_entitlements.app.cache.redis_store.redis.from_url")
    def test_starts_and_serves_with_redis_down(self, mock_from_url, authority_client, authority):
        """Test an unreachable Redis degrades health instead of blocking startup."""
        dead_redis = MagicMock()
        dead_redis.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        dead_redis.get = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        dead_redis.set = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        dead_redis.aclose = AsyncMock()
        mock_from_url.return_value = dead_redis
        authority.on("GET", "/access/user-123", body=access_payload("subscription"))
        service = EntitlementsService(
            config=get_config("entitlements", 8011, cache_backend="redis", redis_url="redis://127.0.0.1:1/0"),
            authority=authority_client
        )

        with TestClient(service.app) as client:
            health = client.get("/health").json()
            access = client.get("/access/user-123").json()

        assert health["status"] == "degraded"
        assert health["dependencies"]["redis"] == "error"
        assert access["accessType"] == "subscription"
        dead_redis.aclose.assert_awaited_once()

    def test_resolve_access_from_authority(self, client, authority):
        """Test access resolution when the authority answers."""
        authority.on("GET", "/access/user-123", body=access_payload("subscription", plan="professional"))

        response = client.get("/access/user-123")

        assert response.status_code == 200
        assert response.json() == {"hasAccess": True, "accessType": "subscription", "plan": "professional"}

    def test_resolve_access_offline_starts_reverse_trial(self, client, authority, store):
        """Test access resolution falls back to a local reverse trial."""
        authority.offline = True

        response = client.get("/access/user-123")

        assert response.status_code == 200
        data = response.json()
        assert data["accessType"] == "reverse_trial"
        assert data["daysRemaining"] == 14
        assert data["plan"] == "professional"
        assert data["reverseTrialActive"] is True
        assert "provenance" not in data
        assert "reverse_trial_start:user-123" in store.snapshot()

    def test_resolve_access_for_guest(self, client, authority):
        """Test guests get a fresh reverse trial without an authority call."""
        response = client.get("/access/guest-1", params={"is_guest": True})

        assert response.status_code == 200
        assert response.json()["daysRemaining"] == 14
        assert authority.calls == []

    def test_gate_for_exhausted_reverse_trial(self, client, authority):
        """Test an exhausted reverse trial is gated as the quota-limited tier."""
        authority.on("GET", "/access/user-123", body=access_payload("reverse_trial", daysRemaining=0))

        response = client.get("/access/user-123/gate")

        assert response.status_code == 200
        data = response.json()
        assert data["posture"] == "granted"
        assert data["banner"] == "quota_pressure"
        assert data["urgency"] == "warning"
        assert data["access"]["accessType"] == "free_lite"
        assert data["access"]["limits"]["tasksPerDay"] == 5

    def test_gate_for_beta(self, client, authority):
        """Test gate decision carries the beta member number."""
        authority.on("GET", "/access/user-123", body=access_payload("beta", memberNumber=17))

        response = client.get("/access/user-123/gate")

        data = response.json()
        assert data["posture"] == "granted"
        assert data["banner"] == "beta_badge"
        assert data["memberNumber"] == 17
        assert data["urgency"] is None

    def test_gate_for_denied(self, client, authority):
        """Test gate decision when the authority denies access."""
        authority.on("GET", "/access/user-123", body=access_payload("free", has_access=False))

        data = client.get("/access/user-123/gate").json()

        assert data["posture"] == "denied"
        assert data["banner"] == "none"

    def test_redeem_beta_code_success(self, client, authority):
        """Test beta code redemption returns refreshed access."""
        authority.on("POST", "/redeem-beta-code", body={"success": True, "message": "Welcome"})
        authority.on("GET", "/access/user-123", body=access_payload("beta", memberNumber=5))

        response = client.post("/access/redeem-beta-code", json={
            "code": "beta-abcd-efgh",
            "user_id": "user-123",
            "email": "user@example.com"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["access"]["accessType"] == "beta"
        assert data["access"]["memberNumber"] == 5

    def test_redeem_beta_code_rejected(self, client, authority):
        """Test beta code rejection passes the authority message through."""
        authority.on("POST", "/redeem-beta-code", status_code=409, body={"error": "Beta code has already been used"})

        data = client.post("/access/redeem-beta-code", json={"code": "BETA-USED-CODE", "user_id": "user-123"}).json()

        assert data["success"] is False
        assert data["message"] == "Beta code has already been used"
        assert data["access"] is None

    def test_redeem_beta_code_requires_code(self, client):
        """Test request validation for beta redemption."""
        response = client.post("/access/redeem-beta-code", json={"user_id": "user-123"})
        assert response.status_code == 422

    def test_start_trial_success(self, client, authority):
        """Test trial start returns days remaining and refreshed access."""
        authority.on("POST", "/start-trial", body={"success": True, "daysRemaining": 14})
        authority.on("GET", "/access/user-123", body=access_payload("trial", plan="professional", daysRemaining=14))

        data = client.post("/access/start-trial", json={"user_id": "user-123"}).json()

        assert data["success"] is True
        assert data["daysRemaining"] == 14
        assert data["access"]["accessType"] == "trial"

    def test_start_trial_offline(self, client, authority):
        """Test trial start fails cleanly when the authority is unreachable."""
        authority.offline = True

        data = client.post("/access/start-trial", json={"user_id": "user-123"}).json()

        assert data["success"] is False
        assert data["access"] is None

    def test_checkout_success(self, client, authority):
        """Test checkout returns the redirect url."""
        authority.on("POST", "/create-checkout-session", body={"url": "https://pay.example/s/1"})

        response = client.post("/access/checkout", json={"plan_id": "professional", "user_id": "user-123"})

        assert response.status_code == 200
        assert response.json() == {"url": "https://pay.example/s/1"}

    def test_checkout_offline_returns_null_url(self, client, authority):
        """Test checkout reports no url when the authority is unreachable."""
        authority.offline = True

        response = client.post("/access/checkout", json={"plan_id": "professional", "user_id": "user-123"})

        assert response.status_code == 200
        assert response.json() == {"url": None}

    def test_checkout_blank_plan_is_validation_error(self, client):
        """Test blank plan ids are rejected."""
        response = client.post("/access/checkout", json={"plan_id": "   ", "user_id": "user-123"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_request_id_is_echoed(self, client):
        """Test the request id header is propagated."""
        response = client.get("/", headers={"x-request-id": "req-42"})
        assert response.headers["x-request-id"] == "req-42"

    def test_metrics_endpoint(self, client, authority):
        """Test Prometheus metrics exposure."""
        authority.on("GET", "/access/user-123", body=access_payload("subscription"))
        client.get("/access/user-123")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "entitlement_resolutions_total" in response.text
        assert "http_requests_total" in response.text


def test_create_app():
    """Test app factory."""
    app = create_app(config=memory_config())
    assert app.title == "Entitlements Service"
