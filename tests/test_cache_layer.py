"""Tests for the Redis cache adapter and its degraded modes."""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

from redis.exceptions import ConnectionError, RedisError

from notes_api.cache.layer import CacheLayer
from notes_api.core.config import Settings


class TestCacheLayerReadWrite:
    async def test__get__returns_none_on_miss(self, cache: CacheLayer) -> None:
        assert await cache.get("missing") is None
        assert cache.stats["misses"] == 1

    async def test__set_then_get__returns_value(self, cache: CacheLayer, fake_redis) -> None:
        value = {"items": [], "total": 0}

        assert await cache.set("page", value, 300) is True
        assert await cache.get("page") == value
        assert cache.stats["hits"] == 1
        assert fake_redis.ttls["test:page"] == 300

    async def test__keys__are_namespaced(self, cache: CacheLayer, fake_redis) -> None:
        await cache.set("k", 1, 60)

        assert list(fake_redis.data) == ["test:k"]

    async def test__set__unserializable_value_is_not_raised(self, cache: CacheLayer) -> None:
        circular: dict = {}
        circular["self"] = circular

        assert await cache.set("bad", circular, 60) is False
        assert cache.stats["errors"] == 1


class TestCacheLayerFailures:
    async def test__get__redis_error_degrades_to_miss(self, settings) -> None:
        redis = AsyncMock()
        redis.get.side_effect = ConnectionError("down")
        cache = CacheLayer(settings=settings, redis=redis)

        assert await cache.get("k") is None
        assert cache.stats["errors"] == 1
        assert cache.stats["misses"] == 1

    async def test__get__slow_redis_degrades_to_miss(self, settings) -> None:
        async def slow_get(key):
            await asyncio.sleep(1)
            return "1"

        redis = AsyncMock()
        redis.get.side_effect = slow_get
        cache = CacheLayer(settings=settings, redis=redis)

        assert await cache.get("k") is None
        assert cache.stats["errors"] == 1

    async def test__set__redis_error_is_swallowed(self, settings) -> None:
        redis = AsyncMock()
        redis.set.side_effect = RedisError("read only replica")
        cache = CacheLayer(settings=settings, redis=redis)

        assert await cache.set("k", {"a": 1}, 300) is False

    async def test__delete_pattern__redis_error_returns_zero(self, settings) -> None:
        redis = AsyncMock()
        redis.scan.side_effect = ConnectionError("down")
        cache = CacheLayer(settings=settings, redis=redis)

        assert await cache.delete_pattern("notes:search:u1:*") == 0


class TestReconnect:
    async def test__delete_pattern__reconnects_after_failed_start(
        self, settings, fake_redis
    ) -> None:
        fake_redis.ping_failures = 1
        fake_redis.data["test:notes:search:u1:abc"] = "{}"
        cache = CacheLayer(settings=settings)

        with patch("notes_api.cache.layer.Redis.from_url", return_value=fake_redis):
            await cache.init_cache()
            assert cache.connected is False

            deleted = await cache.delete_pattern("notes:search:u1:*")

        assert deleted == 1
        assert fake_redis.data == {}
        assert cache.connected is True

    async def test__reads__retry_connection_after_backoff(self, fake_redis) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            cache_namespace="test:",
            cache_reconnect_seconds=0,
        )
        fake_redis.ping_failures = 1
        fake_redis.data["test:k"] = "42"
        cache = CacheLayer(settings=settings)

        with patch("notes_api.cache.layer.Redis.from_url", return_value=fake_redis):
            await cache.init_cache()
            value = await cache.get("k")

        assert value == 42
        assert cache.connected is True

    async def test__reads__do_not_reconnect_within_backoff(self, settings, fake_redis) -> None:
        fake_redis.ping_failures = 1
        cache = CacheLayer(settings=settings)

        with patch(
            "notes_api.cache.layer.Redis.from_url", return_value=fake_redis
        ) as from_url:
            await cache.init_cache()
            assert await cache.get("k") is None
            assert await cache.set("k", 1, 60) is False

        assert from_url.call_count == 1
        assert cache.connected is False

    async def test__delete_pattern__logs_error_while_redis_stays_down(
        self, settings, fake_redis, caplog
    ) -> None:
        fake_redis.ping_failures = 10
        cache = CacheLayer(settings=settings)

        with patch("notes_api.cache.layer.Redis.from_url", return_value=fake_redis):
            with caplog.at_level(logging.ERROR, logger="notes_api.cache.layer"):
                deleted = await cache.delete_pattern("notes:search:u1:*")

        assert deleted == 0
        assert any("Redis unavailable" in r.getMessage() for r in caplog.records)
        assert cache.stats["errors"] == 1
        assert await cache.ping() is False


class TestDeletePattern:
    async def test__delete_pattern__removes_only_matching_keys(
        self, cache: CacheLayer, fake_redis
    ) -> None:
        await cache.set("notes:search:u1:aaa", 1, 300)
        await cache.set("notes:search:u1:bbb", 2, 300)
        await cache.set("notes:search:u2:aaa", 3, 300)

        deleted = await cache.delete_pattern("notes:search:u1:*")

        assert deleted == 2
        assert list(fake_redis.data) == ["test:notes:search:u2:aaa"]
        assert cache.stats["invalidations"] == 1

    async def test__delete_pattern__walks_every_scan_page(
        self, cache: CacheLayer, fake_redis
    ) -> None:
        for i in range(250):
            await cache.set(f"notes:search:u1:{i:04d}", i, 300)

        deleted = await cache.delete_pattern("notes:search:u1:*")

        assert deleted == 250
        assert fake_redis.data == {}


class TestStats:
    async def test__get_stats__hit_rate(self, cache: CacheLayer) -> None:
        await cache.set("k", 1, 60)
        await cache.get("k")
        await cache.get("other")

        stats = cache.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["connected"] is True

    async def test__lock__same_key_shares_lock(self, cache: CacheLayer) -> None:
        assert cache.lock("a") is cache.lock("a")
        assert cache.lock("a") is not cache.lock("b")
