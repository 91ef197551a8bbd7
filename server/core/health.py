"""Health check utilities for the /health endpoint.

Provides uptime tracking plus storage and cache probes.
"""
import time
from datetime import datetime, timezone
from typing import Dict, Any, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from core.storage import Storage
    from core.cache import CacheService

logger = get_logger(__name__)

SERVICE_NAME = "micropost-api"
SERVICE_VERSION = "1.0.0"

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_storage(storage: "Storage") -> Dict[str, Any]:
    """Probe storage; returns record counts, or ``{"ok": False}`` on failure."""
    try:
        stats = await storage.count_stats()
        return {"ok": True, **stats}
    except Exception as e:
        logger.warning("Storage health check failed", error=str(e))
        return {"ok": False}


async def check_cache(cache: "CacheService") -> bool:
    """Round-trip a probe key through the cache."""
    test_key = "_health_check"
    await cache.set(test_key, "ok", ttl=10)
    result = await cache.get(test_key)
    await cache.delete(test_key)
    return result == "ok"


async def get_health_status(
    storage: "Storage",
    cache: "CacheService",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get health status for the /health endpoint.

    Returns:
        Dict containing status, uptime, backend names and check results.
    """
    storage_check = await check_storage(storage)
    cache_healthy = await check_cache(cache)

    return {
        "status": "ok" if (storage_check["ok"] and cache_healthy) else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "uptime_seconds": round(get_uptime(), 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "storage": storage_check,
            "cache": cache_healthy,
        },
        "backends": {
            "storage": storage.name,
            "cache": cache.backend,
        },
    }
