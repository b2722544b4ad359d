# =============================================================================
# Unit Tests — AI Cache
# =============================================================================
#
# The Redis client is an AsyncMock, so no server is needed. Covers key
# derivation, JSON round-trip through the client and graceful degradation.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from legal_ai.services.cache import AICache, cache_key


def _run(coro):
    return asyncio.run(coro)


class TestCacheKey:
    def test_prefix_and_digest(self):
        key = cache_key("embedding", "dano moral")
        prefix, digest = key.split(":")
        assert prefix == "embedding"
        assert len(digest) == 64

    def test_dict_key_ignores_order(self):
        assert cache_key("rag:search", {"a": 1, "b": 2}) == cache_key("rag:search", {"b": 2, "a": 1})

    def test_different_inputs_differ(self):
        assert cache_key("embedding", "a") != cache_key("embedding", "b")


class TestAICache:
    def test_get_hit_decodes_json(self):
        client = AsyncMock()
        client.get.return_value = json.dumps([0.1, 0.2])
        cache = AICache(client=client)

        assert _run(cache.get("embedding", "texto")) == [0.1, 0.2]
        client.get.assert_awaited_once_with(cache_key("embedding", "texto"))

    def test_get_miss(self):
        client = AsyncMock()
        client.get.return_value = None
        assert _run(AICache(client=client).get("embedding", "texto")) is None

    def test_set_uses_ttl(self):
        client = AsyncMock()
        _run(AICache(client=client).set("rag:search", {"query": "x"}, [1], ttl=300))

        key, ttl, value = client.setex.call_args.args
        assert key == cache_key("rag:search", {"query": "x"})
        assert ttl == 300
        assert json.loads(value) == [1]

    def test_redis_outage_is_a_miss(self):
        client = AsyncMock()
        client.get.side_effect = ConnectionError("redis down")
        client.setex.side_effect = ConnectionError("redis down")
        cache = AICache(client=client)

        assert _run(cache.get("embedding", "texto")) is None
        _run(cache.set("embedding", "texto", [1.0]))
        _run(cache.delete("embedding", "texto"))

    def test_stats_fallback(self):
        client = AsyncMock()
        client.info.side_effect = ConnectionError("redis down")
        stats = _run(AICache(client=client).stats())
        assert stats == {"keys": 0, "memory": "0", "hits": 0, "misses": 0}

    def test_clear_prefix_deletes_matching_keys(self):
        async def keys():
            for key in ("rag:search:a", "rag:search:b"):
                yield key

        client = AsyncMock()
        client.scan_iter = MagicMock(return_value=keys())

        assert _run(AICache(client=client).clear_prefix("rag:search")) == 2
        client.scan_iter.assert_called_once_with(match="rag:search:*")
        client.delete.assert_awaited_once_with("rag:search:a", "rag:search:b")
