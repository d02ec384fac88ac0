"""
通用缓存工具
只用于优惠活动的公开读取, 兑换状态和库存不做缓存
"""

import json
import logging
from typing import Optional, Any
import redis.asyncio as redis

from dealina.core.redis import get_redis_client

logger = logging.getLogger(__name__)


class SimpleCache:
    """简单缓存管理器"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: str = ""):
        self._redis_client = redis_client
        self.key_prefix = key_prefix

    @property
    def redis_client(self) -> Optional[redis.Redis]:
        """未显式注入时使用全局连接池"""
        return self._redis_client or get_redis_client()

    @property
    def available(self) -> bool:
        return self.redis_client is not None

    def _get_key(self, key: str) -> str:
        """获取完整的缓存key"""
        return f"{self.key_prefix}{key}" if self.key_prefix else key

    async def get(self, key: str) -> Optional[Any]:
        """获取缓存值, 失败视为未命中"""
        if not self.available:
            return None
        try:
            data = await self.redis_client.get(self._get_key(key))
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            logger.error(f"获取缓存失败 {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """设置缓存值"""
        if not self.available:
            return False
        try:
            data = json.dumps(value, default=str, ensure_ascii=False)
            await self.redis_client.setex(self._get_key(key), ttl, data)
            return True
        except Exception as e:
            logger.error(f"设置缓存失败 {key}: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        """删除缓存"""
        if not self.available or not keys:
            return 0
        try:
            return await self.redis_client.delete(*[self._get_key(k) for k in keys])
        except Exception as e:
            logger.error(f"删除缓存失败 {keys}: {e}")
            return 0


# 优惠活动缓存实例
deal_cache = SimpleCache(key_prefix="deal:")
