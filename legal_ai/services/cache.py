# =============================================================================
# AI Cache — Content-Addressed Redis Cache with TTL
# =============================================================================
#
# Caches embeddings and RAG search results. Keys are `<prefix>:<sha256>`
# where the hash covers the input text, or canonical JSON for structured
# inputs (sorted keys), so logically identical requests share an entry.
#
# DESIGN DECISION: Graceful degradation. Every operation is best-effort:
# if Redis is unavailable, get() is a miss and set()/delete() are no-ops
# (log a warning, carry on). A cache outage must never fail a request.
#
# Uses Redis db 2 by default (CACHE_REDIS_URL).
# =============================================================================

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from legal_ai.config import settings

logger = logging.getLogger(__name__)


def cache_key(prefix: str, data: str | dict | list) -> str:
    """Build `<prefix>:<sha256 hex>` for a text or JSON-serialisable input."""
    content = data if isinstance(data, str) else json.dumps(
        data, sort_keys=True, ensure_ascii=False, default=str,
    )
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class AICache:
    """
    Best-effort JSON cache on redis.asyncio.

    The client is created lazily on first use. Pass `client` to inject a
    ready-made one (tests use fakeredis or a mock).
    """

    def __init__(self, redis_url: str | None = None, client: Any = None) -> None:
        self._redis_url = redis_url or settings.cache_redis_url
        self._client = client

    def _get_redis(self):
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, prefix: str, data: str | dict | list) -> Any | None:
        key = cache_key(prefix, data)
        try:
            cached = await self._get_redis().get(key)
        except Exception as exc:
            logger.warning("Cache get failed (prefix=%s): %s", prefix, exc)
            return None

        if cached is None:
            logger.debug("Cache miss: %s", key)
            return None

        logger.debug("Cache hit: %s", key)
        return json.loads(cached)

    async def set(
        self,
        prefix: str,
        data: str | dict | list,
        value: Any,
        ttl: int | None = None,
    ) -> None:
        key = cache_key(prefix, data)
        ttl_seconds = ttl or settings.cache_default_ttl
        try:
            await self._get_redis().setex(
                key, ttl_seconds, json.dumps(value, ensure_ascii=False, default=str),
            )
            logger.debug("Cache set: %s (ttl=%ds)", key, ttl_seconds)
        except Exception as exc:
            logger.warning("Cache set failed (prefix=%s): %s", prefix, exc)

    async def delete(self, prefix: str, data: str | dict | list) -> None:
        try:
            await self._get_redis().delete(cache_key(prefix, data))
        except Exception as exc:
            logger.warning("Cache delete failed (prefix=%s): %s", prefix, exc)

    async def clear_prefix(self, prefix: str) -> int:
        """Delete every key under `prefix`. Returns how many were removed."""
        try:
            r = self._get_redis()
            keys = [key async for key in r.scan_iter(match=f"{prefix}:*")]
            if keys:
                await r.delete(*keys)
                logger.info("Cleared %d cache entries (prefix=%s)", len(keys), prefix)
            return len(keys)
        except Exception as exc:
            logger.warning("Cache clear failed (prefix=%s): %s", prefix, exc)
            return 0

    async def stats(self) -> dict:
        """Key count, memory use and hit/miss counters from Redis INFO."""
        try:
            r = self._get_redis()
            info_stats = await r.info("stats")
            info_memory = await r.info("memory")
            return {
                "keys": await r.dbsize(),
                "memory": info_memory.get("used_memory_human", "0"),
                "hits": int(info_stats.get("keyspace_hits", 0)),
                "misses": int(info_stats.get("keyspace_misses", 0)),
            }
        except Exception as exc:
            logger.warning("Cache stats failed: %s", exc)
            return {"keys": 0, "memory": "0", "hits": 0, "misses": 0}


# Lazy singleton
_cache: AICache | None = None


def get_cache() -> AICache:
    global _cache
    if _cache is None:
        _cache = AICache()
    return _cache
