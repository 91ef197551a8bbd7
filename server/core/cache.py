"""Cache service with in-memory (default) or Redis backend.

Values are stored JSON serialized in both backends, so a cache hit always
hands back a fresh copy of what was stored. Keys follow the layout built by
:class:`CacheKeys`; pattern deletes use glob syntax (``posts:feed:*``).
"""

import asyncio
import json
import time
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as redis

from core.config import Settings
from core.logging import get_logger, log_cache_operation
from models.cache import CacheEntry

logger = get_logger(__name__)


class CacheKeys:
    """Deterministic cache key builders."""

    ALL_USERS = "users:all"

    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def post(post_id: str) -> str:
        return f"post:{post_id}"

    @staticmethod
    def user_posts(user_id: str, page: int = 0) -> str:
        return f"posts:user:{user_id}:page:{page}"

    @staticmethod
    def user_posts_pattern(user_id: str) -> str:
        return f"posts:user:{user_id}:*"

    @staticmethod
    def feed(page: int = 0) -> str:
        return f"posts:feed:page:{page}"

    FEED_PATTERN = "posts:feed:*"


class CacheService:
    """Async TTL cache.

    Backend selection:
    - Redis: when REDIS_ENABLED=true, REDIS_URL is set and the server answers
    - Memory: otherwise, or when the Redis connection fails at startup

    Expiry in the memory backend is passive: an expired entry is treated as
    absent on read and dropped then. ``startup`` also launches a background
    sweep that runs ``cleanup_expired`` every CACHE_CLEANUP_INTERVAL seconds.
    Backend failures are logged and reported as misses.
    """

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time):
        self.settings = settings
        self.clock = clock
        self.redis: Optional[redis.Redis] = None
        self.memory_cache: Dict[str, CacheEntry] = {}
        self.use_redis = settings.redis_enabled and bool(settings.redis_url)
        self.hits = 0
        self.misses = 0
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def backend(self) -> str:
        return "redis" if self.is_redis_available() else "memory"

    async def startup(self):
        """Initialize cache connection."""
        if self.use_redis:
            try:
                self.redis = redis.from_url(
                    self.settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5,
                    retry_on_timeout=True
                )
                await self.redis.ping()
                logger.info("Redis cache initialized", url=self.settings.redis_url)
            except Exception as e:
                logger.warning("Redis connection failed, falling back to memory", error=str(e))
                self.use_redis = False
                self.redis = None
        else:
            logger.info("Using in-memory cache",
                        redis_enabled=self.settings.redis_enabled,
                        ttl=self.settings.cache_ttl)

        if not self.is_redis_available() and self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def shutdown(self):
        """Close cache connections."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis cache connections closed")

        self.memory_cache.clear()

    def is_redis_available(self) -> bool:
        """Check if Redis is enabled and connected."""
        return self.use_redis and self.redis is not None

    # ============================================================================
    # Primitive operations
    # ============================================================================

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache; None when absent or expired."""
        try:
            if self.is_redis_available():
                raw = await self.redis.get(key)
            else:
                raw = self._memory_get(key)
        except Exception as e:
            logger.error("Cache get failed", key=key, error=str(e))
            raw = None

        hit = raw is not None
        if hit:
            self.hits += 1
        else:
            self.misses += 1
        log_cache_operation(logger, "get", key, hit=hit)
        return json.loads(raw) if hit else None

    def _memory_get(self, key: str) -> Optional[str]:
        entry = self.memory_cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            del self.memory_cache[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with TTL (defaults to CACHE_TTL)."""
        ttl = ttl or self.settings.cache_ttl
        try:
            serialized = json.dumps(value, default=str)
            if self.is_redis_available():
                await self.redis.setex(key, ttl, serialized)
            else:
                now = self.clock()
                self.memory_cache[key] = CacheEntry(
                    key=key, value=serialized, expires_at=now + ttl, created_at=now
                )
            log_cache_operation(logger, "set", key, ttl=ttl)
            return True

        except Exception as e:
            logger.error("Cache set failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        try:
            if self.is_redis_available():
                deleted = bool(await self.redis.delete(key))
            else:
                deleted = self.memory_cache.pop(key, None) is not None
            log_cache_operation(logger, "delete", key, deleted=deleted)
            return deleted

        except Exception as e:
            logger.error("Cache delete failed", key=key, error=str(e))
            return False

    async def exists(self, key: str) -> bool:
        """Check if a live (unexpired) key exists."""
        try:
            if self.is_redis_available():
                return bool(await self.redis.exists(key))
            return self._memory_get(key) is not None

        except Exception as e:
            logger.error("Cache exists check failed", key=key, error=str(e))
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count removed."""
        try:
            if self.is_redis_available():
                keys = [k async for k in self.redis.scan_iter(match=pattern)]
                deleted = await self.redis.delete(*keys) if keys else 0
            else:
                keys = [k for k in self.memory_cache if fnmatchcase(k, pattern)]
                for key in keys:
                    del self.memory_cache[key]
                deleted = len(keys)
            log_cache_operation(logger, "clear_pattern", pattern, deleted=deleted)
            return deleted

        except Exception as e:
            logger.error("Cache clear pattern failed", pattern=pattern, error=str(e))
            return 0

    async def clear(self) -> int:
        """Drop everything."""
        if self.is_redis_available():
            return await self.clear_pattern("*")
        size = len(self.memory_cache)
        self.memory_cache.clear()
        logger.info("Cache cleared", removed=size)
        return size

    def cleanup_expired(self) -> int:
        """Physically evict expired memory entries. Returns count removed."""
        now = self.clock()
        expired = [k for k, entry in self.memory_cache.items() if entry.is_expired(now)]
        for key in expired:
            del self.memory_cache[key]
        if expired:
            logger.debug("Evicted expired cache entries", count=len(expired))
        return len(expired)

    async def _cleanup_loop(self) -> None:
        """Sweep expired memory entries every ``cache_cleanup_interval`` seconds."""
        while True:
            await asyncio.sleep(self.settings.cache_cleanup_interval)
            try:
                self.cleanup_expired()
            except Exception as e:
                logger.error("Cache cleanup failed", error=str(e))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "size": len(self.memory_cache) if not self.is_redis_available() else None,
            "ttl": self.settings.cache_ttl,
            "hits": self.hits,
            "misses": self.misses,
        }

    # ============================================================================
    # Cache-aside
    # ============================================================================

    async def get_or_compute(self, key: str, loader: Callable[[], Awaitable[Any]],
                             ttl: Optional[int] = None) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        ``loader`` runs only on a miss. There is no per-key lock: concurrent
        misses may each run the loader, and the last write wins.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await loader()
        await self.set(key, value, ttl)
        return value
