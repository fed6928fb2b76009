"""Cache stores for the Contacts Service."""

from .store import CacheStore, MemoryCacheStore
from .redis_cache import RedisCacheStore
from .resilient import ResilientCache

__all__ = ["CacheStore", "MemoryCacheStore", "RedisCacheStore", "ResilientCache"]
