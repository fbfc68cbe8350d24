"""Redis-backed key-value store with automatic key namespacing.

Every key is prefixed with ``{namespace}:`` so several CRM clients (or a
client and its tests) can share one Redis database without collisions.
Values are stored as JSON strings.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
import structlog

from src.leadsync.config import get_settings
from src.leadsync.sync.adapter import KeyValueStore

logger = structlog.get_logger(__name__)

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ── Namespaced store ───────────────────────────────────────────────────────


class RedisKeyValueStore(KeyValueStore):
    """Key-value store that auto-prefixes all keys with ``{namespace}:``.

    Args:
        redis_client: Async Redis client created with ``decode_responses=True``.
        namespace: Key prefix for this client's data.
    """

    def __init__(self, redis_client: aioredis.Redis, namespace: str = "crm") -> None:
        self._redis = redis_client
        self._namespace = namespace

    def _key(self, key: str) -> str:
        """Generate a namespaced key: {namespace}:{key}."""
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("storage.corrupt_value", key=key)
            return None

    async def set(self, key: str, value: Any, ex: int | None = None) -> None:
        """Set a JSON value with optional TTL (seconds)."""
        await self._redis.set(self._key(key), json.dumps(value), ex=ex)

    async def remove(self, key: str) -> None:
        await self._redis.delete(self._key(key))


def get_redis_store(namespace: str | None = None) -> RedisKeyValueStore:
    """Get a RedisKeyValueStore using the global Redis pool."""
    settings = get_settings()
    return RedisKeyValueStore(get_redis_pool(), namespace or settings.STORAGE_NAMESPACE)
