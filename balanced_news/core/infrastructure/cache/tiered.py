"""两级缓存：Redis 持久层 + 进程内 LRU 快速层。

- get: 持久层健康时优先读取；持久层命中直接返回（不回填内存层）。
  持久层异常时标记为不健康并回退到内存层；持久层未命中同样查询内存层。
- set: 写穿透，先写持久层，无论成败都写内存层，持久层失败不影响调用结果。
- 持久层异常触发后台重连，线性退避，超过最大次数后停止重试直到进程重启。
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from functools import partial
from typing import Any, TypeVar

from loguru import logger
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_incrementing,
)

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.cache.memory import MemoryCache
from balanced_news.core.infrastructure.health import CacheHealthResult, HealthStatus
from balanced_news.core.infrastructure.logging import BusinessEvents, short_key
from balanced_news.core.infrastructure.redis import (
    RedisClient,
    RedisKeys,
    RedisUnavailableError,
    mask_redis_url,
)
from balanced_news.core.infrastructure.scheduler import sleep_or_stop

T = TypeVar("T")

CACHE_BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    RedisUnavailableError,
    TimeoutError,
    OSError,
)


class TieredCache:
    """Redis + 内存两级缓存。"""

    def __init__(
        self,
        redis: RedisClient | None,
        memory: MemoryCache | None = None,
        *,
        key_prefix: str | None = None,
        operation_timeout: float | None = None,
        reconnect_base_delay: float | None = None,
        reconnect_max_delay: float | None = None,
        max_reconnect_attempts: int | None = None,
    ):
        self._redis = redis
        self.memory = memory or MemoryCache()
        self._key_prefix = (
            key_prefix if key_prefix is not None else settings.CACHE_KEY_PREFIX
        )
        self._operation_timeout = (
            operation_timeout or settings.CACHE_OPERATION_TIMEOUT_SEC
        )
        self._reconnect_base_delay = (
            reconnect_base_delay
            if reconnect_base_delay is not None
            else settings.REDIS_RECONNECT_BASE_DELAY_SEC
        )
        self._reconnect_max_delay = (
            reconnect_max_delay
            if reconnect_max_delay is not None
            else settings.REDIS_RECONNECT_MAX_DELAY_SEC
        )
        self._max_reconnect_attempts = (
            max_reconnect_attempts
            if max_reconnect_attempts is not None
            else settings.REDIS_MAX_RECONNECT_ATTEMPTS
        )
        self._connected = False
        self._reconnect_requested = asyncio.Event()
        self._reconnect_exhausted = False

    @property
    def connected(self) -> bool:
        return self._redis is not None and self._connected

    @property
    def redis_configured(self) -> bool:
        return self._redis is not None

    @property
    def reconnect_exhausted(self) -> bool:
        return self._reconnect_exhausted

    # ============ 连接生命周期 ============

    async def connect(self) -> bool:
        """建立持久层连接，失败时交给后台重连循环。"""
        if self._redis is None:
            logger.info("Redis not configured, using in-memory cache only")
            return False

        try:
            async with self._redis.ensure_available(timeout=self._operation_timeout):
                pass
        except RedisUnavailableError as e:
            logger.error(
                f"Failed to connect to Redis at {mask_redis_url(self._redis.url)}: {e}"
            )
            self._on_error("connect", e)
            return False

        self._on_connect()
        return True

    def _on_connect(self, attempts: int = 0) -> None:
        was_connected = self._connected
        self._connected = True
        self._reconnect_requested.clear()
        if attempts:
            BusinessEvents.cache_backend_recovered(attempts=attempts)
        if not was_connected:
            logger.info("Redis connected")

    def _on_error(self, operation: str, exc: BaseException) -> None:
        was_connected = self._connected
        self._connected = False
        if was_connected:
            BusinessEvents.cache_backend_degraded(operation=operation, error=str(exc))
        if not self._reconnect_exhausted:
            self._reconnect_requested.set()

    def _on_end(self) -> None:
        if self._connected:
            logger.warning("Redis connection ended")
        self._connected = False

    async def _call_durable(self, fn: Callable[[RedisClient], Awaitable[T]]) -> T:
        if self._redis is None:
            raise RedisUnavailableError("Redis not configured")
        return await asyncio.wait_for(fn(self._redis), timeout=self._operation_timeout)

    def _durable_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    # ============ 缓存操作 ============

    async def get(self, key: str) -> str | None:
        started = time.perf_counter()

        if self.connected:
            durable_key = self._durable_key(key)
            try:
                value = await self._call_durable(lambda r: r.get(durable_key))
                if value is not None:
                    logger.debug(
                        f"Cache hit (Redis) {short_key(key)} "
                        f"in {_elapsed_ms(started)}ms"
                    )
                    return value
            except CACHE_BACKEND_ERRORS as e:
                logger.warning(
                    f"Redis get failed for {short_key(key)}, "
                    f"falling back to memory cache: {e!r}"
                )
                self._on_error("get", e)

        value = self.memory.get(key)
        if value is not None:
            logger.debug(f"Cache hit (Memory) {short_key(key)} in {_elapsed_ms(started)}ms")
        else:
            logger.debug(f"Cache miss {short_key(key)} in {_elapsed_ms(started)}ms")
        return value

    async def set(self, key: str, value: str, ttl_sec: int | None = None) -> bool:
        if not key or value is None:
            logger.warning(
                f"Invalid cache set operation: has_key={bool(key)}, "
                f"has_value={value is not None}"
            )
            return False

        if self.connected:
            durable_key = self._durable_key(key)
            try:
                await self._call_durable(
                    lambda r: r.set(durable_key, value, ex=ttl_sec or None)
                )
                logger.debug(
                    f"Cache set (Redis) {short_key(key)} "
                    f"len={len(value)} ttl={ttl_sec}"
                )
            except CACHE_BACKEND_ERRORS as e:
                logger.warning(
                    f"Redis set failed for {short_key(key)}, "
                    f"keeping memory copy only: {e!r}"
                )
                self._on_error("set", e)

        self.memory.set(key, value, ttl_sec)
        return True

    async def delete(self, key: str) -> bool:
        deleted = False
        if self.connected:
            durable_key = self._durable_key(key)
            try:
                deleted = await self._call_durable(lambda r: r.delete(durable_key)) > 0
            except CACHE_BACKEND_ERRORS as e:
                logger.warning(f"Redis delete failed for {short_key(key)}: {e!r}")
                self._on_error("delete", e)

        memory_deleted = self.memory.delete(key)
        return deleted or memory_deleted

    async def clear(self, pattern: str | None = None) -> int:
        """按 glob 模式清除两级缓存；不传模式则清空本服务的全部 key。"""
        cleared = 0
        if self.connected:
            durable_pattern = self._durable_key(pattern or "*")
            try:
                cleared += await self._call_durable(
                    lambda r: r.delete_matching(durable_pattern)
                )
            except CACHE_BACKEND_ERRORS as e:
                logger.warning(f"Redis clear failed for pattern {pattern}: {e!r}")
                self._on_error("clear", e)

        if pattern:
            cleared += self.memory.delete_matching(pattern)
        else:
            cleared += self.memory.clear()

        logger.info(f"Cache cleared: pattern={pattern}, count={cleared}")
        return cleared

    def sweep_expired(self) -> int:
        """主动清理内存层过期条目。"""
        cleaned = self.memory.cleanup()
        if cleaned:
            logger.info(f"Expired cache entries cleaned: {cleaned}")
        return cleaned

    async def stats(self) -> dict[str, Any]:
        redis_stats: dict[str, Any] = {"connected": False}
        if self.connected:
            try:
                db_size = await self._call_durable(lambda r: r.dbsize())
                memory_info = await self._call_durable(lambda r: r.memory_info())
                redis_stats = {"connected": True, "db_size": db_size, **memory_info}
            except CACHE_BACKEND_ERRORS as e:
                logger.warning(f"Failed to get Redis stats: {e!r}")
                redis_stats["error"] = str(e)
                self._on_error("stats", e)

        return {
            "memory": self.memory.stats(),
            "redis": redis_stats,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def health_check(self) -> CacheHealthResult:
        """读写删除自检。"""
        test_key = RedisKeys.health_check(int(time.time() * 1000))
        test_value = "test_value"
        try:
            await self.set(test_key, test_value, 60)
            retrieved = await self.get(test_key)
            await self.delete(test_key)
        except Exception as e:
            logger.exception(f"Cache health check failed: {e}")
            return CacheHealthResult(
                status=HealthStatus.ERROR,
                redis_connected=self.connected,
                redis_configured=self.redis_configured,
                memory_size=self.memory.size(),
                memory_max_size=self.memory.max_size,
                round_trip_ok=False,
                error=str(e),
            )

        round_trip_ok = retrieved == test_value
        if not round_trip_ok:
            status = HealthStatus.ERROR
        elif self.redis_configured and not self.connected:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.OK

        return CacheHealthResult(
            status=status,
            redis_connected=self.connected,
            redis_configured=self.redis_configured,
            memory_size=self.memory.size(),
            memory_max_size=self.memory.max_size,
            round_trip_ok=round_trip_ok,
        )

    # ============ 重连 ============

    async def run_reconnect_loop(self, stop_event: asyncio.Event) -> None:
        """常驻任务：等待重连请求，按线性退避重试。"""
        redis = self._redis
        if redis is None:
            return

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(self._reconnect_requested.wait(), timeout=1.0)
            except TimeoutError:
                continue
            self._reconnect_requested.clear()
            if self._connected:
                continue

            if not await self._reconnect_with_backoff(redis, stop_event):
                if self._reconnect_exhausted:
                    logger.error(
                        "Max Redis reconnection attempts reached, giving up; "
                        "serving from memory cache until restart"
                    )
                    BusinessEvents.feature_degraded(
                        feature="durable_cache",
                        reason="reconnect_attempts_exhausted",
                    )
                return

    async def _reconnect_with_backoff(
        self, redis: RedisClient, stop_event: asyncio.Event
    ) -> bool:
        base, cap = self._reconnect_base_delay, self._reconnect_max_delay
        if await sleep_or_stop(stop_event, min(base, cap)):
            return False

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(CACHE_BACKEND_ERRORS),
            stop=(
                stop_after_attempt(max(self._max_reconnect_attempts, 1))
                | stop_when_event_set(stop_event)
            ),
            wait=wait_incrementing(start=2 * base, increment=base, max=cap),
            sleep=partial(sleep_or_stop, stop_event),
            before_sleep=self._log_reconnect_retry,
        )
        try:
            async for attempt in retrying:
                if stop_event.is_set():
                    return False
                with attempt:
                    async with redis.ensure_available(timeout=self._operation_timeout):
                        pass
                    self._on_connect(attempts=attempt.retry_state.attempt_number)
                    return True
        except RetryError as e:
            logger.warning(f"Redis reconnection failed: {e.last_attempt.exception()}")

        if not stop_event.is_set():
            self._reconnect_exhausted = True
        return False

    def _log_reconnect_retry(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Redis reconnection attempt {retry_state.attempt_number}/"
            f"{self._max_reconnect_attempts} failed: {error}; "
            f"retrying in {delay:.1f}s"
        )

    async def close(self) -> None:
        """关闭持久层连接并清空内存层。"""
        logger.info("Closing cache connections...")
        if self._redis is not None:
            try:
                await self._redis.close()
            except CACHE_BACKEND_ERRORS as e:
                logger.warning(f"Error closing Redis connection: {e!r}")
        self._on_end()
        self.memory.clear()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
