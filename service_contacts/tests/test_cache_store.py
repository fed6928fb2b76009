"""
Unit tests for the cache stores and the resilient cache facade.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from service_contacts.app.cache.redis_cache import RedisCacheStore, escape_glob
from service_contacts.app.cache.resilient import ResilientCache
from service_contacts.app.cache.store import MemoryCacheStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _counter(metrics: MetricsCollector, name: str, **labels) -> float:
    value = metrics.registry.get_sample_value(name, labels)
    return value or 0.0


class TestMemoryCacheStore:
    """Test cases for MemoryCacheStore."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return MemoryCacheStore(clock=clock)

    @pytest.mark.asyncio
    async def test_get_returns_live_value(self, store):
        await store.set("contacts:contact:1", "{}", 300)

        assert await store.get("contacts:contact:1") == "{}"
        assert await store.get("contacts:contact:2") is None

    @pytest.mark.asyncio
    async def test_entry_expires_passively(self, store, clock):
        """An expired entry reads as absent and is purged on that read."""
        await store.set("k", "v", 300)

        clock.advance(299)
        assert await store.get("k") == "v"
        assert len(store) == 1

        clock.advance(1)
        assert await store.get("k") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_set_overwrites_and_refreshes_ttl(self, store, clock):
        await store.set("k", "old", 10)
        clock.advance(8)
        await store.set("k", "new", 10)
        clock.advance(8)

        assert await store.get("k") == "new"

    @pytest.mark.asyncio
    async def test_delete_prefix(self, store):
        """Only keys starting with the prefix are removed."""
        await store.set("contacts:list:a", "1", 300)
        await store.set("contacts:list:b", "2", 300)
        await store.set("contacts:contact:1", "3", 300)

        removed = await store.delete_prefix("contacts:list:")

        assert removed == 2
        assert await store.get("contacts:list:a") is None
        assert await store.get("contacts:contact:1") == "3"

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.set("a", "1", 300)
        await store.set("b", "2", 300)

        await store.clear()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_expired_entries_swept_on_write(self, clock):
        """Entries nobody reads again are purged by the periodic sweep."""
        store = MemoryCacheStore(clock=clock, sweep_interval=3)
        await store.set("contacts:idempotency:create-contact:a", "{}", 10)
        await store.set("contacts:idempotency:create-contact:b", "{}", 10)

        clock.advance(11)
        await store.set("contacts:contact:1", "{}", 300)

        assert len(store) == 1
        assert await store.get("contacts:contact:1") == "{}"

    @pytest.mark.asyncio
    async def test_incr_counter_never_expires(self, store, clock):
        assert await store.incr("contacts:list-epoch") == 1
        assert await store.incr("contacts:list-epoch") == 2

        clock.advance(10 ** 9)
        assert store.purge_expired() == 0
        assert await store.get("contacts:list-epoch") == "2"


class TestRedisCacheStore:
    """Test cases for RedisCacheStore."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.incr = AsyncMock(return_value=3)
        client.keys = AsyncMock(return_value=[])
        client.delete = AsyncMock()
        client.flushdb = AsyncMock()
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def store(self, client):
        return RedisCacheStore("redis://localhost:6379/0", client=client)

    def test_escape_glob(self):
        assert escape_glob('contacts:list:{"q":"a*b?[c]"}') == 'contacts:list:{"q":"a\\*b\\?\\[c\\]"}'

    @pytest.mark.asyncio
    async def test_set_uses_setex(self, store, client):
        await store.set("contacts:contact:1", "{}", 300)

        client.setex.assert_awaited_once_with("contacts:contact:1", 300, "{}")

    @pytest.mark.asyncio
    async def test_incr(self, store, client):
        assert await store.incr("contacts:list-epoch") == 3

        client.incr.assert_awaited_once_with("contacts:list-epoch")

    @pytest.mark.asyncio
    async def test_delete_prefix_scans_escaped_pattern(self, store, client):
        client.keys.return_value = ["contacts:list:a", "contacts:list:b"]

        removed = await store.delete_prefix("contacts:list:")

        assert removed == 2
        client.keys.assert_awaited_once_with("contacts:list:*")
        client.delete.assert_awaited_once_with("contacts:list:a", "contacts:list:b")

    @pytest.mark.asyncio
    async def test_delete_prefix_without_matches(self, store, client):
        assert await store.delete_prefix("contacts:list:") == 0
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_errors_propagate(self, store, client):
        client.get.side_effect = ConnectionError("down")

        with pytest.raises(ConnectionError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_close(self, store, client):
        await store.close()

        client.aclose.assert_awaited_once()
        assert store.redis is None


class TestResilientCache:
    """Test cases for ResilientCache."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("contacts", registry=CollectorRegistry())

    @pytest.fixture
    def primary(self):
        primary = MagicMock()
        primary.name = "redis"
        primary.get = AsyncMock(return_value=None)
        primary.set = AsyncMock()
        primary.incr = AsyncMock(return_value=1)
        primary.delete_prefix = AsyncMock(return_value=0)
        primary.ping = AsyncMock(return_value=True)
        primary.close = AsyncMock()
        return primary

    @pytest.mark.asyncio
    async def test_no_url_uses_memory(self):
        cache = ResilientCache(None)
        await cache.start()

        assert cache.backend is cache.fallback
        assert await cache.health_check() == "memory"

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, primary):
        cache = ResilientCache(primary=primary)
        await cache.start()

        await cache.set("contact:1", "{}", 300)

        primary.set.assert_awaited_once_with("contacts:contact:1", "{}", 300)
        assert cache.backend is primary

    @pytest.mark.asyncio
    async def test_unreachable_backend_at_start_falls_back(self, primary):
        primary.ping.return_value = False
        cache = ResilientCache(primary=primary)

        await cache.start()

        assert cache.backend is cache.fallback
        primary.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_connection_failure_at_start_falls_back(self):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        client.aclose = AsyncMock()
        cache = ResilientCache(primary=RedisCacheStore("redis://nowhere:6379/0", client=client))

        await cache.start()

        assert cache.backend is cache.fallback

    @pytest.mark.asyncio
    async def test_get_error_degrades_to_memory(self, primary):
        """A backend error reads as a miss and the backend is abandoned."""
        primary.get.side_effect = ConnectionError("lost")
        cache = ResilientCache(primary=primary)
        await cache.start()

        assert await cache.get("list:x") is None
        assert cache.backend is cache.fallback

        await cache.set("list:x", "page", 300)
        assert await cache.get("list:x") == "page"
        assert primary.get.await_count == 1

    @pytest.mark.asyncio
    async def test_set_error_writes_to_memory(self, primary):
        primary.set.side_effect = TimeoutError()
        cache = ResilientCache(primary=primary)
        await cache.start()

        assert await cache.set("contact:1", "{}", 300) is True
        assert await cache.fallback.get("contacts:contact:1") == "{}"

    @pytest.mark.asyncio
    async def test_delete_prefix_error_is_swallowed(self, primary):
        primary.delete_prefix.side_effect = ConnectionError("lost")
        cache = ResilientCache(primary=primary)
        await cache.start()

        assert await cache.delete_prefix("list:") == 0
        assert cache.backend is cache.fallback

    @pytest.mark.asyncio
    async def test_incr_error_continues_in_memory(self, primary):
        primary.incr.side_effect = ConnectionError("lost")
        cache = ResilientCache(primary=primary)
        await cache.start()

        assert await cache.incr("list-epoch") == 1
        assert cache.backend is cache.fallback
        assert await cache.fallback.get("contacts:list-epoch") == "1"

    @pytest.mark.asyncio
    async def test_memory_errors_are_swallowed(self):
        fallback = MagicMock()
        fallback.name = "memory"
        fallback.get = AsyncMock(side_effect=RuntimeError("boom"))
        fallback.set = AsyncMock(side_effect=RuntimeError("boom"))
        fallback.delete_prefix = AsyncMock(side_effect=RuntimeError("boom"))
        fallback.incr = AsyncMock(side_effect=RuntimeError("boom"))
        cache = ResilientCache(fallback=fallback)

        assert await cache.get("k") is None
        assert await cache.set("k", "v", 300) is False
        assert await cache.delete_prefix("k") == 0
        assert await cache.incr("k") is None

    @pytest.mark.asyncio
    async def test_hits_and_misses_recorded_by_key_prefix(self, metrics):
        cache = ResilientCache(metrics=metrics)

        await cache.get("list:a")
        await cache.set("list:a", "1", 300)
        await cache.get("list:a")
        await cache.get("contact:1")

        assert _counter(metrics, "cache_hits_total", key_prefix="list") == 1
        assert _counter(metrics, "cache_misses_total", key_prefix="list") == 1
        assert _counter(metrics, "cache_misses_total", key_prefix="contact") == 1

    @pytest.mark.asyncio
    async def test_clear_only_touches_namespace(self):
        cache = ResilientCache()
        await cache.fallback.set("other:key", "keep", 300)
        await cache.set("list:a", "drop", 300)

        await cache.clear()

        assert await cache.fallback.get("other:key") == "keep"
        assert await cache.get("list:a") is None
