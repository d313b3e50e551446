import asyncio
import json
from typing import Any, Optional

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from notes_api.core.config import Settings, get_settings

import logging

logger = logging.getLogger(__name__)


class CacheUnavailable(Exception):
    """Raised internally when Redis cannot answer in time. Never leaves this module."""


class CacheLayer:
    """
    Redis-backed cache adapter.

    The cache is an optimization only:
    - get() degrades to a miss on any Redis error or timeout
    - set() and delete_pattern() log and swallow failures
    - Every call is bounded by settings.cache_timeout_seconds
    - Keys are namespaced with settings.cache_namespace
    """

    def __init__(self, settings: Settings | None = None, redis: Redis | None = None):
        self._settings = settings
        self._redis: Redis | None = redis
        self._initialized = redis is not None
        self._next_attempt = 0.0

        # Stats tracking
        self.stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
            "invalidations": 0,
        }

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def init_cache(self, force: bool = False):
        """
        Connect to Redis if not connected yet.

        A failed attempt leaves the layer uninitialized: reads and writes run
        uncached and retry after settings.cache_reconnect_seconds, while
        force=True (used by invalidation) retries immediately.
        """
        if self._initialized:
            return

        now = asyncio.get_running_loop().time()
        if not force and now < self._next_attempt:
            return

        settings = self.settings
        redis = Redis.from_url(
            settings.redis_dsn,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis_pool_size,
            socket_connect_timeout=settings.cache_connect_timeout_seconds,
            socket_timeout=settings.cache_timeout_seconds,
            socket_keepalive=True,
            health_check_interval=30,
        )

        try:
            # Verify connection
            await asyncio.wait_for(redis.ping(), timeout=settings.cache_connect_timeout_seconds)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Redis connection failed, running without cache: {e}")
            self._next_attempt = now + settings.cache_reconnect_seconds
            try:
                await redis.aclose()
            except (RedisError, OSError) as close_error:
                logger.debug(f"Error closing failed Redis client: {close_error}")
            return

        self._redis = redis
        self._initialized = True
        logger.info("Redis connection established")

    def _key(self, key: str) -> str:
        """Build namespaced cache key."""
        return f"{self.settings.cache_namespace}{key}"

    def _serialize(self, value: Any) -> str:
        """Serialize value for storage."""
        return json.dumps(value, default=str)

    def _deserialize(self, raw: str) -> Any:
        """Deserialize value from storage."""
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Return raw string if not valid JSON
            return raw

    async def _call(self, coro):
        """Run a Redis call under the cache timeout."""
        try:
            return await asyncio.wait_for(coro, timeout=self.settings.cache_timeout_seconds)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            self.stats["errors"] += 1
            raise CacheUnavailable(str(e) or type(e).__name__) from e

    async def get(self, key: str) -> Optional[Any]:
        """
        Retrieve a value from Redis.

        Args:
            key: Cache key (will be namespaced automatically)

        Returns:
            The cached value, or None on a miss or when Redis is unavailable
        """
        await self.init_cache()

        if not self._redis:
            self.stats["misses"] += 1
            return None

        try:
            raw = await self._call(self._redis.get(self._key(key)))
        except CacheUnavailable as e:
            logger.error(f"Redis GET error for {key}: {e}")
            self.stats["misses"] += 1
            return None

        if raw is None:
            self.stats["misses"] += 1
            logger.debug(f"Cache miss: {key}")
            return None

        self.stats["hits"] += 1
        logger.debug(f"Cache hit: {key}")
        return self._deserialize(raw)

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a value with a TTL. Best-effort.

        Args:
            key: Cache key (will be namespaced automatically)
            value: JSON-serializable value to cache
            ttl: TTL in seconds

        Returns:
            True when the value was written
        """
        await self.init_cache()

        if not self._redis:
            return False

        try:
            data = self._serialize(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Serialization failed for {key}: {e}")
            self.stats["errors"] += 1
            return False

        try:
            await self._call(self._redis.set(self._key(key), data, ex=ttl))
        except CacheUnavailable as e:
            logger.error(f"Redis SET error for {key}: {e}")
            return False

        logger.debug(f"Stored {key} (ttl={ttl}s)")
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a glob pattern.

        Returns once every matching key present at the start of the scan has
        been deleted. Failures are logged and reported as 0 deleted.
        """
        # Other workers may still be writing to Redis, so always try to reach it
        await self.init_cache(force=True)

        if not self._redis:
            logger.error(f"Pattern delete skipped for {pattern}: Redis unavailable")
            self.stats["errors"] += 1
            return 0

        namespaced = self._key(pattern)
        cursor = 0
        deleted_count = 0

        try:
            while True:
                cursor, keys = await self._call(
                    self._redis.scan(cursor, match=namespaced, count=100)
                )
                if keys:
                    await self._call(self._redis.delete(*keys))
                    deleted_count += len(keys)
                if cursor == 0:
                    break
        except CacheUnavailable as e:
            logger.error(f"Pattern delete error for {pattern}: {e}")
            return 0

        self.stats["invalidations"] += 1
        logger.debug(f"Pattern delete completed: {pattern} ({deleted_count} keys)")
        return deleted_count

    def lock(self, key: str) -> asyncio.Lock:
        """Per-key lock so concurrent misses for one key load it once."""
        return _get_lock_for_key(self._key(key))

    async def ping(self) -> bool:
        await self.init_cache()

        if not self._redis:
            return False
        try:
            return bool(await self._call(self._redis.ping()))
        except CacheUnavailable:
            return False

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._redis:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis: {e}")
        self._redis = None
        self._initialized = False

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total = self.stats["hits"] + self.stats["misses"]

        return {
            **self.stats,
            "connected": self.connected,
            "hit_rate": self.stats["hits"] / total if total > 0 else 0,
        }


# Lock management for cache stampede protection
# When multiple concurrent requests miss the same search key, a per-key lock
# lets ONE request hit the database while the others wait and then re-read
# the cache. TTLCache bounds the registry; setdefault() hands every caller
# for a key the same lock object.
_locks = TTLCache(maxsize=10_000, ttl=300)


def _get_lock_for_key(key: str) -> asyncio.Lock:
    """
    Get or create an asyncio.Lock for a cache key.

    Args:
        key: Cache key to get lock for

    Returns:
        asyncio.Lock: Shared lock instance for this key
    """
    return _locks.setdefault(key, asyncio.Lock())


# Cache layer instance (singleton per worker)
cache_layer = CacheLayer()
