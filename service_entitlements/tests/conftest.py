"""
Shared fixtures for entitlement service tests.
"""

import pytest

from service_entitlements.app.access.mutations import MutationOperations
from service_entitlements.app.access.resolver import EntitlementResolver
from service_entitlements.app.authority.client import AuthorityClient
from service_entitlements.app.cache.entitlement_cache import EntitlementCache
from service_entitlements.app.cache.store import InMemoryStore
from shared.circuit_breaker import CircuitBreaker
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError
from shared.test_helpers import AUTHORITY_URL, FakeClock, MockAuthority


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def authority():
    return MockAuthority()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def cache(store):
    return EntitlementCache(store)


@pytest.fixture
def metrics():
    return MetricsCollector("entitlements-test")


@pytest.fixture
def authority_client(authority, metrics):
    return AuthorityClient(
        AUTHORITY_URL,
        timeout=1.0,
        retry_config=RetryConfig(max_attempts=1, base_delay=0.0, jitter=False),
        circuit_breaker=CircuitBreaker(
            failure_threshold=100,
            recovery_timeout=0.0,
            expected_exception=RetryError,
            name="test_authority"
        ),
        metrics=metrics,
        transport=authority.transport()
    )


@pytest.fixture
def resolver(authority_client, cache, clock, metrics):
    return EntitlementResolver(authority_client, cache, clock=clock, metrics=metrics)


@pytest.fixture
def mutations(authority_client, resolver, cache):
    return MutationOperations(
        authority_client,
        resolver,
        cache,
        success_url="https://app.example/billing/success",
        cancel_url="https://app.example/billing/cancel"
    )
