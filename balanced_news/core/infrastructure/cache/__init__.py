"""两级缓存。"""

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.cache.memory import CacheEntry, MemoryCache
from balanced_news.core.infrastructure.cache.tiered import TieredCache
from balanced_news.core.infrastructure.redis import redis_client

__all__ = [
    "CacheEntry",
    "MemoryCache",
    "TieredCache",
    "get_tiered_cache",
    "tiered_cache",
]

# 全局缓存实例
tiered_cache = TieredCache(redis_client if settings.REDIS_ENABLED else None)


def get_tiered_cache() -> TieredCache:
    """获取缓存依赖。"""
    return tiered_cache
