"""
活动读缓存测试 - 使用模拟的Redis客户端
"""

import json
import pytest
from unittest.mock import AsyncMock

from dealina.services.common_cache import SimpleCache


@pytest.mark.asyncio
class TestSimpleCache:

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock(return_value=2)
        return client

    @pytest.fixture
    def cache(self, redis_client):
        return SimpleCache(redis_client, key_prefix="deal:")

    async def test_set_uses_prefix_and_ttl(self, cache, redis_client):
        assert await cache.set("id:d_1", {"title": "拿铁"}, ttl=60) is True
        redis_client.setex.assert_called_once_with("deal:id:d_1", 60, json.dumps({"title": "拿铁"}, ensure_ascii=False))

    async def test_get_hit(self, cache, redis_client):
        redis_client.get.return_value = '{"title": "拿铁"}'
        assert await cache.get("id:d_1") == {"title": "拿铁"}
        redis_client.get.assert_called_once_with("deal:id:d_1")

    async def test_error_is_a_miss(self, cache, redis_client):
        redis_client.get.side_effect = ConnectionError("redis down")
        assert await cache.get("id:d_1") is None

    async def test_delete_many(self, cache, redis_client):
        assert await cache.delete("id:d_1", "code:ABCDE") == 2
        redis_client.delete.assert_called_once_with("deal:id:d_1", "deal:code:ABCDE")

    async def test_unavailable_without_client(self):
        cache = SimpleCache(key_prefix="deal:")
        assert cache.available is False
        assert await cache.get("id:d_1") is None
        assert await cache.set("id:d_1", {}) is False
