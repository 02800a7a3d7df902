"""Per-client feed rate limiting (fixed window, counted in Redis)."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from loguru import logger

from balanced_news.core.config import settings
from balanced_news.core.domain.exceptions import RateLimitExceededError
from balanced_news.core.infrastructure.cache.tiered import CACHE_BACKEND_ERRORS
from balanced_news.core.infrastructure.logging import BusinessEvents
from balanced_news.core.infrastructure.redis import RedisClient

RESOURCE = "feed"


class FeedRateLimiter:
    """按客户端 IP 的固定窗口限流；Redis 不可用或已知断开时放行。"""

    def __init__(
        self,
        redis: RedisClient | None,
        *,
        window_sec: int | None = None,
        max_requests: int | None = None,
        timeout_sec: float | None = None,
        backend_available: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis
        self._backend_available = backend_available
        self.window_sec = window_sec or settings.FEED_RATE_LIMIT_WINDOW_SEC
        self.max_requests = max_requests or settings.feed_rate_limit_max_requests
        self._timeout_sec = timeout_sec or settings.CACHE_OPERATION_TIMEOUT_SEC
        self._clock = clock

    async def check(self, identifier: str) -> None:
        """计数一次请求，超过上限时抛出 RateLimitExceededError。"""
        if self._redis is None:
            return
        # 持久层已知断开时不计数
        if self._backend_available is not None and not self._backend_available():
            logger.debug(f"Durable cache down, skipping rate limit for {identifier}")
            return

        now = int(self._clock())
        window_start = now - now % self.window_sec
        try:
            allowed, current = await asyncio.wait_for(
                self._redis.rate_limit_check(
                    RESOURCE,
                    identifier,
                    str(window_start),
                    self.max_requests,
                    ttl=self.window_sec,
                ),
                timeout=self._timeout_sec,
            )
        except CACHE_BACKEND_ERRORS as e:
            BusinessEvents.feature_degraded(feature="feed_rate_limit", reason=repr(e))
            return

        if not allowed:
            logger.warning(
                f"Feed rate limit exceeded for {identifier}: "
                f"{current}/{self.max_requests} in window {window_start}"
            )
            raise RateLimitExceededError(
                retry_after_sec=max(window_start + self.window_sec - now, 1)
            )
