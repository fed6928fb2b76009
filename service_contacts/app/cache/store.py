"""
Cache store contract and the in-process implementation.
"""

import math
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple


class CacheStore(ABC):
    """Key/value store with per-entry TTL and prefix deletion.

    Values are opaque serialized text. Implementations must be safe for
    concurrent use from many requests; colliding writes are last-write-wins.
    """

    name = "cache"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the live value for ``key``, or None."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; return how many were removed."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Increment the non-expiring counter at ``key``; return the new value."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry."""

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""


class MemoryCacheStore(CacheStore):
    """In-process cache with passive expiry.

    Entries carry an absolute expiry time; an expired entry is reported as
    absent and purged when it is next read. Every ``sweep_interval`` writes,
    all expired entries are purged so keys that are never read again do not
    accumulate.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: int = 1000):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self.sweep_interval = sweep_interval
        self._writes = 0

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None

        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

        self._writes += 1
        if self._writes >= self.sweep_interval:
            self._writes = 0
            self.purge_expired()

    def purge_expired(self) -> int:
        """Remove every expired entry; return how many were removed."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in list(self._entries.items()) if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    async def incr(self, key: str) -> int:
        current = await self.get(key)
        value = int(current) + 1 if current is not None else 1
        self._entries[key] = (str(value), math.inf)
        return value

    async def delete_prefix(self, prefix: str) -> int:
        # Snapshot keys so concurrent writers cannot break iteration
        doomed = [key for key in list(self._entries) if key.startswith(prefix)]
        for key in doomed:
            self._entries.pop(key, None)
        return len(doomed)

    async def clear(self) -> None:
        self._entries.clear()

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
