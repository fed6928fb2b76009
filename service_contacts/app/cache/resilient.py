"""
Namespaced, failure-tolerant cache facade used by the query planner, the
mutation pipeline and the idempotency ledger.
"""

from typing import Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .redis_cache import RedisCacheStore
from .store import CacheStore, MemoryCacheStore

DEFAULT_NAMESPACE = "contacts:"


class ResilientCache:
    """Cache facade that never fails the calling request.

    The backend is chosen once at startup: Redis when a URL is configured and
    the server answers, the in-process store otherwise. If the Redis backend
    errors later on, the error is logged, Redis is abandoned for the rest of
    the process lifetime and the operation is served by the in-process store.
    Errors from the in-process store are logged and swallowed as well.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        metrics: Optional[MetricsCollector] = None,
        primary: Optional[CacheStore] = None,
        fallback: Optional[CacheStore] = None,
    ):
        self.redis_url = redis_url
        self.namespace = namespace
        self.metrics = metrics
        self.logger = get_logger("contacts.cache")
        self.fallback: CacheStore = fallback if fallback is not None else MemoryCacheStore()
        self._primary: Optional[CacheStore] = primary

    @property
    def backend(self) -> CacheStore:
        """Store currently serving requests."""
        return self._primary or self.fallback

    async def start(self):
        """Select the backend for this process."""
        if self._primary is None and self.redis_url:
            self._primary = RedisCacheStore(self.redis_url)

        if self._primary is None:
            self.logger.info("No Redis URL configured, using in-memory cache")
            return

        try:
            if isinstance(self._primary, RedisCacheStore):
                await self._primary.start()
            elif not await self._primary.ping():
                raise ConnectionError("cache backend did not answer ping")
            self.logger.info("Using shared cache backend", backend=self._primary.name)
        except Exception as e:
            self.logger.warning("Failed to connect to cache backend, using in-memory cache", error=str(e))
            await self._abandon_primary()

    async def stop(self):
        """Flush and close every backend."""
        await self._abandon_primary()
        await self.fallback.close()

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    @staticmethod
    def _key_prefix(key: str) -> str:
        return key.split(":", 1)[0]

    async def _abandon_primary(self):
        primary, self._primary = self._primary, None
        if primary is None:
            return
        try:
            await primary.close()
        except Exception as e:
            self.logger.warning("Error closing cache backend", error=str(e))

    async def _degrade(self, operation: str, key: str, error: Exception):
        self.logger.warning(
            "Cache backend error, falling back to in-memory cache",
            operation=operation,
            key=key,
            backend=self.backend.name,
            error=str(error)
        )
        await self._abandon_primary()

    async def get(self, key: str) -> Optional[str]:
        """Return the cached value for ``key``; any failure reads as a miss."""
        full_key = self._key(key)
        value = None
        try:
            value = await self.backend.get(full_key)
        except Exception as e:
            if self._primary is None:
                self.logger.warning("Cache get error", key=key, error=str(e))
            else:
                await self._degrade("get", key, e)
                try:
                    value = await self.fallback.get(full_key)
                except Exception as fallback_error:
                    self.logger.warning("Cache get error", key=key, error=str(fallback_error))

        if self.metrics:
            self.metrics.record_cache_access(self._key_prefix(key), hit=value is not None)
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value``; returns False when nothing could be written."""
        full_key = self._key(key)
        try:
            await self.backend.set(full_key, value, ttl_seconds)
            return True
        except Exception as e:
            if self._primary is None:
                self.logger.warning("Cache set error", key=key, error=str(e))
                return False
            await self._degrade("set", key, e)

        try:
            await self.fallback.set(full_key, value, ttl_seconds)
            return True
        except Exception as e:
            self.logger.warning("Cache set error", key=key, error=str(e))
            return False

    async def incr(self, key: str) -> Optional[int]:
        """Bump the counter at ``key``; None when no backend could do it."""
        full_key = self._key(key)
        try:
            return await self.backend.incr(full_key)
        except Exception as e:
            if self._primary is None:
                self.logger.warning("Cache incr error", key=key, error=str(e))
                return None
            await self._degrade("incr", key, e)

        try:
            return await self.fallback.incr(full_key)
        except Exception as e:
            self.logger.warning("Cache incr error", key=key, error=str(e))
            return None

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every entry under ``prefix`` within the namespace."""
        full_prefix = self._key(prefix)
        try:
            return await self.backend.delete_prefix(full_prefix)
        except Exception as e:
            if self._primary is None:
                self.logger.warning("Cache delete error", prefix=prefix, error=str(e))
                return 0
            await self._degrade("delete_prefix", prefix, e)

        try:
            return await self.fallback.delete_prefix(full_prefix)
        except Exception as e:
            self.logger.warning("Cache delete error", prefix=prefix, error=str(e))
            return 0

    async def clear(self) -> None:
        """Drop every entry in the namespace."""
        await self.delete_prefix("")

    async def health_check(self) -> str:
        """Report the active backend, or "degraded" if it stopped answering."""
        try:
            if await self.backend.ping():
                return self.backend.name
        except Exception as e:
            self.logger.warning("Cache health check failed", error=str(e))
        return "degraded"
