"""
Per-user entitlement state over a KeyValueStore.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from shared.errors import CacheError
from shared.logging import get_logger
from .store import KeyValueStore
from ..access.models import AccessRecord, Provenance


class EntitlementCache:
    """Cached access records, reverse-trial start markers and beta coupons.

    Backend failures never escape: reads degrade to "absent" and writes are
    logged and dropped, so resolution keeps producing a record.
    """

    ACCESS_PREFIX = "access:"
    TRIAL_START_PREFIX = "reverse_trial_start:"
    BETA_COUPON_PREFIX = "beta_coupon:"

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.logger = get_logger("entitlements.cache")

    def access_key(self, user_id: str) -> str:
        return f"{self.ACCESS_PREFIX}{user_id}"

    def trial_start_key(self, user_id: str) -> str:
        return f"{self.TRIAL_START_PREFIX}{user_id}"

    def beta_coupon_key(self, user_id: str) -> str:
        return f"{self.BETA_COUPON_PREFIX}{user_id}"

    async def _read(self, key: str) -> Optional[str]:
        try:
            return await self.store.get(key)
        except CacheError as e:
            self.logger.warning("Cache read failed", key=key, error=e.message)
            return None

    async def get_access(self, user_id: str) -> Optional[AccessRecord]:
        """Last resolved record for the user, or None if absent or unparseable."""
        raw = await self._read(self.access_key(user_id))
        if raw is None:
            return None

        try:
            record = AccessRecord.model_validate(json.loads(raw))
        except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
            self.logger.warning("Discarding unparseable cached access record", user_id=user_id, error=str(e))
            return None

        return record.with_provenance(Provenance.CACHE)

    async def set_access(self, user_id: str, record: AccessRecord) -> bool:
        try:
            await self.store.set(self.access_key(user_id), record.to_cache_value())
        except CacheError as e:
            self.logger.error("Cache write failed", user_id=user_id, error=e.message)
            return False

        self.logger.debug("Cached access record", user_id=user_id, access_type=record.access_type.value)
        return True

    async def get_or_create_trial_start(self, user_id: str, now: datetime) -> datetime:
        """Return the user's reverse-trial start marker, creating it at ``now`` if absent.

        The marker is write-once. Concurrent first calls converge on whichever
        write landed first. An unparseable marker is replaced, since there is
        nothing to compute a window from.
        """
        key = self.trial_start_key(user_id)
        raw = await self._read(key)

        if raw is not None:
            parsed = _parse_timestamp(raw)
            if parsed is not None:
                return parsed
            self.logger.warning("Replacing unparseable reverse trial start marker", user_id=user_id, raw=raw)
            await self._write_marker(key, now, overwrite=True)
            return now

        stored = await self._write_marker(key, now, overwrite=False)
        if stored:
            self.logger.info("Reverse trial started locally", user_id=user_id, started_at=now.isoformat())
            return now

        # Lost the race to another resolution; adopt its marker.
        winner = _parse_timestamp(await self._read(key) or "")
        return winner or now

    async def _write_marker(self, key: str, now: datetime, overwrite: bool) -> bool:
        value = now.isoformat()
        try:
            if overwrite:
                await self.store.set(key, value)
                return True
            return await self.store.set_if_absent(key, value)
        except CacheError as e:
            self.logger.error("Start marker write failed", key=key, error=e.message)
            # Unpersisted marker: compute from now, retry persisting next time
            return True

    async def get_beta_coupon(self, user_id: str) -> Optional[str]:
        coupon = await self._read(self.beta_coupon_key(user_id))
        return coupon or None


def _parse_timestamp(raw: str) -> Optional[datetime]:
    try:
        value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
