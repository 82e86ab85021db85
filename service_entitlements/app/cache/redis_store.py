"""
Redis-backed key-value store for the local entitlement cache.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import AccessLayerException, CacheError


class RedisStore:
    """KeyValueStore over redis.asyncio.

    Entries carry no TTL: the cached access record and the start marker must
    outlive authority outages of any length.
    """

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("entitlements.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis connection.

        An unreachable server is not fatal: the client reconnects lazily and
        until then every operation fails with :class:`CacheError`.
        """
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30
                )
            except ValueError as e:
                self.logger.error("Invalid Redis URL", error=str(e))
                raise AccessLayerException("REDIS_START_FAILED", str(e))

        try:
            await self.redis.ping()
        except (RedisError, OSError) as e:
            self.logger.warning("Redis unreachable at startup, continuing without cache", error=str(e))
            return

        self.logger.info("Redis store started")

    async def stop(self):
        """Stop the Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis store stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheError("Redis store not started")
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._client().get(key)
        except RedisError as e:
            raise CacheError("Redis GET failed", details={"key": key, "error": str(e)})
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client().set(key, value)
        except RedisError as e:
            raise CacheError("Redis SET failed", details={"key": key, "error": str(e)})

    async def set_if_absent(self, key: str, value: str) -> bool:
        try:
            return bool(await self._client().set(key, value, nx=True))
        except RedisError as e:
            raise CacheError("Redis SET NX failed", details={"key": key, "error": str(e)})

    async def delete(self, key: str) -> None:
        try:
            await self._client().delete(key)
        except RedisError as e:
            raise CacheError("Redis DEL failed", details={"key": key, "error": str(e)})

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(await self._client().ping())
        except (CacheError, RedisError):
            return False
