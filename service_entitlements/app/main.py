"""
Entitlements service: access resolution and entitlement mutations over HTTP.
"""

from typing import Optional

from fastapi import Query
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ValidationError
from shared.logging import set_user_context
from shared.retry import RetryConfig, RetryError
from shared.circuit_breaker import CircuitBreaker

from .access.gate import decide
from .access.mutations import MutationOperations
from .access.resolver import EntitlementResolver
from .authority.client import AuthorityClient, TRANSPORT_ERRORS
from .cache.entitlement_cache import EntitlementCache
from .cache.redis_store import RedisStore
from .cache.store import InMemoryStore, KeyValueStore


class RedeemBetaCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, description="Beta code, e.g. BETA-XXXX-XXXX")
    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None


class StartTrialRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class CheckoutRequest(BaseModel):
    plan_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None


class EntitlementsService(BaseService):
    """Entitlements service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 store: Optional[KeyValueStore] = None,
                 authority: Optional[AuthorityClient] = None):
        super().__init__("entitlements", 8011, config or get_config("entitlements", 8011))

        self.redis_store: Optional[RedisStore] = None
        if store is None:
            if self.config.cache_backend == "redis":
                self.redis_store = RedisStore(self.config.redis_url)
                store = self.redis_store
            else:
                store = InMemoryStore()

        self.cache = EntitlementCache(store)
        self.authority = authority or AuthorityClient(
            self.config.authority_url,
            timeout=self.config.authority_timeout_seconds,
            retry_config=RetryConfig(
                max_attempts=self.config.authority_retry_attempts,
                base_delay=self.config.authority_retry_base_delay,
                max_delay=5.0
            ),
            circuit_breaker=CircuitBreaker(
                failure_threshold=self.config.authority_failure_threshold,
                recovery_timeout=self.config.authority_recovery_timeout,
                expected_exception=(RetryError,) + TRANSPORT_ERRORS,
                name="entitlement_authority"
            ),
            metrics=self.metrics
        )
        self.resolver = EntitlementResolver(
            self.authority,
            self.cache,
            trial_days=self.config.trial_days,
            metrics=self.metrics
        )
        self.mutations = MutationOperations(
            self.authority,
            self.resolver,
            self.cache,
            success_url=self.config.checkout_success_url,
            cancel_url=self.config.checkout_cancel_url
        )

        self._setup_entitlements_routes()

    def _setup_entitlements_routes(self):
        """Set up entitlements-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "entitlements",
                "message": "Entitlement Resolution Service",
                "version": "1.0.0",
                "capabilities": ["resolution", "reverse_trial", "caching", "mutations"]
            }

        @self.app.get("/access/{user_id}")
        async def resolve_access(user_id: str, is_guest: bool = Query(False)):
            """Resolve the access record for a user."""
            set_user_context(user_id)
            record = await self.resolver.resolve(user_id, is_guest)
            return record.to_wire()

        @self.app.get("/access/{user_id}/gate")
        async def gate_decision(user_id: str, is_guest: bool = Query(False)):
            """Resolve access and map it to a gate posture and banner."""
            set_user_context(user_id)
            record = await self.resolver.resolve(user_id, is_guest)
            decision = decide(record)
            return {
                "posture": decision.posture.value,
                "banner": decision.banner.value,
                "urgency": decision.urgency.value if decision.urgency else None,
                "daysRemaining": decision.days_remaining,
                "memberNumber": decision.member_number,
                "access": record.to_wire()
            }

        @self.app.post("/access/redeem-beta-code")
        async def redeem_beta_code(request: RedeemBetaCodeRequest):
            """Redeem a beta code and return the refreshed access."""
            set_user_context(request.user_id)
            result = await self.mutations.redeem_beta_code(request.code, request.user_id, request.email)
            return {
                "success": result.success,
                "message": result.message,
                "access": result.access.to_wire() if result.access else None
            }

        @self.app.post("/access/start-trial")
        async def start_trial(request: StartTrialRequest):
            """Start a trial with the authority and return the refreshed access."""
            set_user_context(request.user_id)
            result = await self.mutations.start_trial(request.user_id)
            return {
                "success": result.success,
                "daysRemaining": result.days_remaining,
                "message": result.message,
                "access": result.access.to_wire() if result.access else None
            }

        @self.app.post("/access/checkout")
        async def create_checkout(request: CheckoutRequest):
            """Create a checkout session; url is null when checkout could not start."""
            set_user_context(request.user_id)
            if not request.plan_id.strip():
                raise ValidationError("plan_id must not be blank")
            url = await self.mutations.create_checkout_session(request.plan_id, request.user_id, request.email)
            return {"url": url}

    async def _check_dependencies(self):
        """Check entitlements service dependencies."""
        dependencies = {
            "authority": self.authority.circuit_breaker.get_state()["state"]
        }

        if self.redis_store is not None:
            dependencies["redis"] = "ok" if await self.redis_store.health_check() else "error"
        else:
            dependencies["cache"] = "memory"

        return dependencies

    async def start(self):
        """Start entitlements service components."""
        if self.redis_store is not None:
            await self.redis_store.start()
        self.logger.info("Entitlements service started", cache_backend=self.config.cache_backend)

    async def stop(self):
        """Stop entitlements service components."""
        if self.redis_store is not None:
            await self.redis_store.stop()
        self.logger.info("Entitlements service stopped")


def create_app(**kwargs):
    """Create entitlements service application."""
    service = EntitlementsService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = EntitlementsService()
    service.run()
