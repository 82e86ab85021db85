"""
Identity-scoped access state with stale-resolution discarding.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from shared.logging import get_logger
from .gate import GateDecision, decide
from .models import AccessRecord
from .mutations import BetaRedemptionResult, MutationOperations, TrialStartResult
from .resolver import EntitlementResolver


@dataclass(frozen=True)
class Identity:
    """What the identity provider hands us once a user is known."""
    user_id: Optional[str]
    email: Optional[str] = None
    is_guest: bool = False


class AccessSession:
    """Holds the access record published for the current identity.

    Every identity change bumps a generation counter. A resolution that
    finishes after a newer identity was set is dropped instead of published;
    its cache write already went to the user it was started for.
    """

    def __init__(self, resolver: EntitlementResolver, mutations: MutationOperations):
        self.resolver = resolver
        self.mutations = mutations
        self.identity: Optional[Identity] = None
        self.access: Optional[AccessRecord] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self.logger = get_logger("entitlements.session")

    @property
    def loading(self) -> bool:
        return self.access is None

    @property
    def gate(self) -> GateDecision:
        return decide(self.access)

    async def identify(self, identity: Optional[Identity]) -> Optional[AccessRecord]:
        """Switch identity and resolve for it. Returns None if superseded meanwhile."""
        async with self._lock:
            self._generation += 1
            generation = self._generation
            self.identity = identity
            self.access = None

        return await self._refresh(identity, generation)

    async def refresh(self) -> Optional[AccessRecord]:
        async with self._lock:
            identity, generation = self.identity, self._generation
        return await self._refresh(identity, generation)

    async def _refresh(self, identity: Optional[Identity], generation: int) -> Optional[AccessRecord]:
        user_id = identity.user_id if identity else None
        is_guest = identity.is_guest if identity else False

        record = await self.resolver.resolve(user_id, is_guest)
        return await self._publish(record, generation, user_id)

    async def _publish(self, record: AccessRecord, generation: int, user_id: Optional[str]) -> Optional[AccessRecord]:
        async with self._lock:
            if generation != self._generation:
                self.logger.info("Discarding stale resolution", user_id=user_id)
                return None
            self.access = record
        return record

    async def redeem_beta_code(self, code: str) -> BetaRedemptionResult:
        identity, generation = await self._current()
        if identity is None or not identity.user_id:
            return BetaRedemptionResult(success=False, message="Please sign in first")

        result = await self.mutations.redeem_beta_code(code, identity.user_id, identity.email)
        if result.access is not None:
            await self._publish(result.access, generation, identity.user_id)
        return result

    async def start_trial(self) -> TrialStartResult:
        identity, generation = await self._current()
        if identity is None or not identity.user_id:
            return TrialStartResult(success=False, message="Please sign in first")

        result = await self.mutations.start_trial(identity.user_id)
        if result.access is not None:
            await self._publish(result.access, generation, identity.user_id)
        return result

    async def create_checkout(self, plan_id: str) -> Optional[str]:
        identity, _ = await self._current()
        if identity is None or not identity.user_id:
            return None
        return await self.mutations.create_checkout_session(plan_id, identity.user_id, identity.email)

    async def _current(self):
        async with self._lock:
            return self.identity, self._generation
