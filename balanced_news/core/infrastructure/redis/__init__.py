"""Redis 客户端封装。"""

from balanced_news.core.infrastructure.redis.client import (
    RedisClient,
    RedisUnavailableError,
    mask_redis_url,
    redis_client,
)
from balanced_news.core.infrastructure.redis.keys import RedisKeys

__all__ = [
    "RedisClient",
    "RedisKeys",
    "RedisUnavailableError",
    "mask_redis_url",
    "redis_client",
]
