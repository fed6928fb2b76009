"""
Redis-backed cache store for the Contacts Service.
"""

import re
from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger
from .store import CacheStore

_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisCacheStore(CacheStore):
    """Shared cache store on Redis.

    TTL is delegated to Redis (``SETEX``). Errors are raised to the caller;
    :class:`~service_contacts.app.cache.resilient.ResilientCache` decides how
    to degrade.
    """

    name = "redis"

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("contacts.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Connect and verify the server answers."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

        await self.redis.ping()
        self.logger.info("Redis cache started")

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.redis.setex(key, ttl_seconds, value)

    async def incr(self, key: str) -> int:
        return int(await self.redis.incr(key))

    async def delete_prefix(self, prefix: str) -> int:
        keys = await self.redis.keys(f"{escape_glob(prefix)}*")
        if not keys:
            return 0
        await self.redis.delete(*keys)
        return len(keys)

    async def clear(self) -> None:
        await self.redis.flushdb()

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")
