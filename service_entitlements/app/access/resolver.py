"""
Entitlement resolution: authority first, then cache, then a local reverse trial.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from shared.errors import AuthorityRejectedError, AuthorityUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import AccessRecord, AccessType, Provenance, TRIAL_DAYS
from .reverse_trial import ReverseTrialCalculator
from ..authority.client import AuthorityClient
from ..cache.entitlement_cache import EntitlementCache


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EntitlementResolver:
    """Produces exactly one AccessRecord per call and never raises.

    Priority, each step short-circuiting:

    1. no user id -> ``none``
    2. guest -> fresh full-length reverse trial (authority and cache untouched)
    3. authority success -> its record
    4. authority rejection -> local reverse trial (cache is not read)
    5. authority unreachable -> cached record, else local reverse trial

    Any non-``none`` result is written back to the cache under the user id the
    call was made with.
    """

    def __init__(self,
                 authority: AuthorityClient,
                 cache: EntitlementCache,
                 clock: Callable[[], datetime] = utc_now,
                 trial_days: int = TRIAL_DAYS,
                 metrics: Optional[MetricsCollector] = None):
        self.authority = authority
        self.cache = cache
        self.clock = clock
        self.trial_days = trial_days
        self.metrics = metrics
        self.reverse_trial = ReverseTrialCalculator(cache, clock, trial_days)
        self.logger = get_logger("entitlements.resolver")

    async def resolve(self, user_id: Optional[str], is_guest: bool = False) -> AccessRecord:
        start_time = time.time()

        if not user_id:
            record = AccessRecord.denied()
        elif is_guest:
            # Guests always start a fresh window; nothing here tracks their decay.
            record = AccessRecord.reverse_trial(self.trial_days, Provenance.GUEST)
        else:
            try:
                record = await self._resolve_known_user(user_id)
            except Exception as e:
                self.logger.error("Unexpected resolution failure", user_id=user_id, error=str(e), exc_info=True)
                record = AccessRecord.free_lite(Provenance.LOCAL_FALLBACK)

        record = record.normalized()

        if user_id and record.access_type != AccessType.NONE:
            await self.cache.set_access(user_id, record)

        if self.metrics:
            self.metrics.record_resolution(record.provenance.value, record.access_type.value, time.time() - start_time)

        self.logger.info(
            "Resolved access",
            user_id=user_id,
            access_type=record.access_type.value,
            source=record.provenance.value,
            days_remaining=record.days_remaining
        )
        return record

    async def _resolve_known_user(self, user_id: str) -> AccessRecord:
        try:
            record = await self.authority.get_access(user_id)
        except AuthorityRejectedError as e:
            self.logger.info(
                "Authority rejected access lookup, computing reverse trial locally",
                user_id=user_id,
                status_code=e.status_code
            )
            return await self.reverse_trial.compute(user_id)
        except AuthorityUnavailableError:
            return await self._resolve_offline(user_id)

        if record.access_type == AccessType.BETA and record.member_number is not None:
            self.logger.info("Beta tester access confirmed", user_id=user_id, member_number=record.member_number)

        return record

    async def _resolve_offline(self, user_id: str) -> AccessRecord:
        cached = await self.cache.get_access(user_id)
        if cached is None:
            self.logger.info("Authority unreachable and no cached access, computing reverse trial locally",
                             user_id=user_id)
            return await self.reverse_trial.compute(user_id)

        if cached.is_exhausted_reverse_trial:
            self.logger.info("Cached reverse trial exhausted, decaying to free_lite", user_id=user_id)
            return AccessRecord.free_lite(Provenance.CACHE)

        self.logger.info("Authority unreachable, serving cached access",
                         user_id=user_id, access_type=cached.access_type.value)
        return cached
