"""
Locally computed reverse trial, used when the authority cannot decide.
"""

from datetime import datetime, timedelta
from typing import Callable

from shared.logging import get_logger
from .models import AccessRecord, Provenance, TRIAL_DAYS
from ..cache.entitlement_cache import EntitlementCache


ONE_DAY = timedelta(days=1)


def days_remaining(started_at: datetime, now: datetime, trial_days: int = TRIAL_DAYS) -> int:
    """Whole days left in a window of ``trial_days`` that began at ``started_at``.

    Non-increasing in ``now`` and never negative. A start in the future counts
    as zero days elapsed.
    """
    elapsed = max(0, (now - started_at) // ONE_DAY)
    return max(0, trial_days - elapsed)


def record_for_window(remaining: int) -> AccessRecord:
    if remaining > 0:
        return AccessRecord.reverse_trial(remaining, Provenance.LOCAL_FALLBACK)
    return AccessRecord.free_lite(Provenance.LOCAL_FALLBACK, days_remaining=0)


class ReverseTrialCalculator:
    """Computes a user's reverse trial from their write-once start marker."""

    def __init__(self, cache: EntitlementCache, clock: Callable[[], datetime],
                 trial_days: int = TRIAL_DAYS):
        self.cache = cache
        self.clock = clock
        self.trial_days = trial_days
        self.logger = get_logger("entitlements.reverse_trial")

    async def compute(self, user_id: str) -> AccessRecord:
        now = self.clock()
        started_at = await self.cache.get_or_create_trial_start(user_id, now)
        remaining = days_remaining(started_at, now, self.trial_days)

        self.logger.debug(
            "Computed local reverse trial",
            user_id=user_id,
            started_at=started_at.isoformat(),
            days_remaining=remaining
        )
        return record_for_window(remaining)
