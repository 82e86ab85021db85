"""
Integration tests for the entitlement resolution flow.

Wires the real authority client, cache, resolver, mutations and session
together against an in-process authority, then walks a user through an
outage, trial decay and beta redemption.
"""

import json

import pytest

from service_entitlements.app.access.gate import Banner, Posture, Urgency
from service_entitlements.app.access.models import AccessType
from service_entitlements.app.access.mutations import MutationOperations
from service_entitlements.app.access.resolver import EntitlementResolver
from service_entitlements.app.access.session import AccessSession, Identity
from service_entitlements.app.authority.client import AuthorityClient
from service_entitlements.app.cache.entitlement_cache import EntitlementCache
from service_entitlements.app.cache.store import InMemoryStore
from shared.circuit_breaker import CircuitBreaker
from shared.retry import RetryConfig, RetryError
from shared.test_helpers import AUTHORITY_URL, FakeClock, MockAuthority, access_payload


class TestEntitlementsFlow:
    """Integration tests for the entitlement resolution flow."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def authority(self):
        return MockAuthority()

    @pytest.fixture
    def store(self):
        return InMemoryStore()

    @pytest.fixture
    def breaker_clock(self):
        return FakeClock()

    @pytest.fixture
    def session(self, authority, store, clock, breaker_clock):
        client = AuthorityClient(
            AUTHORITY_URL,
            timeout=1.0,
            retry_config=RetryConfig(max_attempts=2, base_delay=0.0, jitter=False),
            circuit_breaker=CircuitBreaker(
                failure_threshold=2,
                recovery_timeout=30.0,
                expected_exception=RetryError,
                name="flow_authority",
                clock=lambda: breaker_clock.now.timestamp()
            ),
            transport=authority.transport()
        )
        cache = EntitlementCache(store)
        resolver = EntitlementResolver(client, cache, clock=clock)
        mutations = MutationOperations(client, resolver, cache)
        return AccessSession(resolver, mutations)

    @pytest.mark.asyncio
    async def test_subscriber_survives_outage_on_cached_record(self, session, authority, store):
        """Scenario: authority answers once, then goes away."""
        authority.on("GET", "/access/sub-1", body=access_payload("subscription", plan="professional"))
        await session.identify(Identity(user_id="sub-1"))
        assert session.gate.posture == Posture.GRANTED

        authority.offline = True
        record = await session.refresh()

        assert record.access_type == AccessType.SUBSCRIPTION
        assert record.plan == "professional"
        assert "reverse_trial_start:sub-1" not in store.snapshot()

    @pytest.mark.asyncio
    async def test_new_user_offline_trial_decays_to_lite_then_redeems_beta(self, session, authority, store,
                                                                             clock, breaker_clock):
        """Scenario: offline from day one, trial runs out, beta code restores full access."""
        authority.offline = True
        await session.identify(Identity(user_id="new-1", email="new@example.com"))

        assert session.access.access_type == AccessType.REVERSE_TRIAL
        assert session.access.days_remaining == 14
        assert session.gate.banner == Banner.TRIAL_COUNTDOWN
        assert session.gate.urgency == Urgency.INFO

        # While offline the cached record is served as-is; stale but non-exhausted.
        clock.advance(days=11)
        await session.refresh()
        assert session.access.days_remaining == 14

        # Authority back but without a record for this user: window is recomputed locally.
        authority.offline = False
        breaker_clock.advance(seconds=31)
        await session.refresh()
        assert session.access.days_remaining == 3
        assert session.gate.urgency == Urgency.CRITICAL

        clock.advance(days=3)
        await session.refresh()
        assert session.access.access_type == AccessType.FREE_LITE
        assert session.access.has_access is True
        assert session.gate.banner == Banner.QUOTA_PRESSURE
        assert json.loads(store.snapshot()["access:new-1"])["accessType"] == "free_lite"

        authority.on("POST", "/redeem-beta-code", body={"success": True, "message": "Welcome, tester"})
        authority.on("GET", "/access/new-1", body=access_payload("beta", memberNumber=101))
        result = await session.redeem_beta_code("beta-1234-5678")

        assert result.success is True
        assert session.access.access_type == AccessType.BETA
        assert session.gate.banner == Banner.BETA_BADGE
        assert session.gate.member_number == 101

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits_to_cache(self, session, authority, store, breaker_clock):
        """Scenario: repeated outages open the breaker; recovery closes it again."""
        authority.on("GET", "/access/u1", body=access_payload("subscription"))
        await session.identify(Identity(user_id="u1"))

        authority.offline = True
        await session.refresh()
        await session.refresh()
        calls_when_opened = len(authority.calls)

        record = await session.refresh()
        assert record.access_type == AccessType.SUBSCRIPTION
        assert len(authority.calls) == calls_when_opened

        authority.offline = False
        breaker_clock.advance(seconds=31)
        await session.refresh()
        assert len(authority.calls) == calls_when_opened + 1
        assert session.mutations.authority.circuit_breaker.get_state()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_checkout_during_outage_returns_no_url(self, session, authority):
        """Scenario: checkout cannot start while the authority is down."""
        authority.offline = True
        await session.identify(Identity(user_id="u1"))

        assert await session.create_checkout("professional") is None
        assert session.gate.posture == Posture.GRANTED

    @pytest.mark.asyncio
    async def test_signing_out_denies_access(self, session, authority):
        authority.on("GET", "/access/u1", body=access_payload("beta", memberNumber=1))
        await session.identify(Identity(user_id="u1"))

        await session.identify(None)

        assert session.access.access_type == AccessType.NONE
        assert session.gate.posture == Posture.DENIED
