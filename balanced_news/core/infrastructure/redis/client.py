"""Redis 客户端封装。

提供统一的 Redis 访问接口，支持：
- 连接池管理
- 健康检查
- 常用操作封装
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import redis.asyncio as aioredis
from loguru import logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.health import HealthStatus, RedisHealthResult
from balanced_news.core.infrastructure.redis.keys import RedisKeys


class RedisUnavailableError(RuntimeError):
    """Redis 不可用（连接失败/超时等）。"""


def mask_redis_url(url: str) -> str:
    """隐藏 URL 中的密码，用于日志输出。"""
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    if ":" in credentials:
        user = credentials.split(":", 1)[0]
        return f"{scheme}://{user}:***@{host}"
    return url


class RedisClient:
    """Redis 客户端封装类。"""

    def __init__(self, url: str | None = None):
        """初始化 Redis 客户端。

        Args:
            url: Redis 连接 URL，默认使用配置中的 REDIS_URL
        """
        self._url = url or settings.REDIS_URL
        self._client: Redis | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def client(self) -> Redis:
        """获取 Redis 客户端实例（延迟初始化）。"""
        if self._client is None:
            self._client = aioredis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
        return self._client

    async def close(self) -> None:
        """关闭 Redis 连接。"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        """检查 Redis 连接是否正常。

        Returns:
            连接正常返回 True，否则返回 False
        """
        try:
            return await self.client.ping()
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    @asynccontextmanager
    async def ensure_available(
        self, *, timeout: float = 5.0
    ) -> AsyncGenerator[RedisClient, None]:
        """确保进入上下文时 Redis 连接可用。

        Usage:
            try:
                async with redis_client.ensure_available(timeout=2.0):
                    ...
            except RedisUnavailableError:
                # Redis 不可用，按需降级/跳过
                ...
        """
        try:
            ok = await asyncio.wait_for(self.client.ping(), timeout=timeout)
        except TimeoutError as e:
            raise RedisUnavailableError("Redis ping timeout") from e
        except Exception as e:
            raise RedisUnavailableError(f"Redis ping failed: {e}") from e
        if not ok:
            raise RedisUnavailableError("Redis ping returned falsy result")

        yield self

    async def health_check(self) -> RedisHealthResult:
        """执行 Redis 健康检查。"""
        try:
            is_connected = await self.ping()
            info = await self.client.info("server") if is_connected else {}
            return RedisHealthResult(
                status=HealthStatus.OK if is_connected else HealthStatus.ERROR,
                connected=is_connected,
                version=info.get("redis_version", "unknown"),
            )
        except Exception as e:
            return RedisHealthResult(
                status=HealthStatus.ERROR,
                connected=False,
                error=str(e),
            )

    # ============ 缓存操作 ============

    async def get(self, key: str) -> str | None:
        """获取字符串值。"""
        return await self.client.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: int | timedelta | None = None,
        nx: bool = False,
    ) -> bool:
        """设置字符串值。

        Args:
            key: 键名
            value: 值
            ex: 过期时间（秒或 timedelta）
            nx: 仅当键不存在时设置

        Returns:
            设置成功返回 True
        """
        return await self.client.set(key, value, ex=ex, nx=nx)

    async def delete(self, *keys: str) -> int:
        """删除一个或多个键。"""
        return await self.client.delete(*keys)

    async def expire(self, key: str, seconds: int) -> bool:
        """设置键的过期时间。"""
        return await self.client.expire(key, seconds)

    async def scan_keys(self, pattern: str, count: int = 500) -> list[str]:
        """按 glob 模式扫描键（SCAN，不阻塞服务端）。"""
        return [key async for key in self.client.scan_iter(match=pattern, count=count)]

    async def delete_matching(self, pattern: str) -> int:
        """删除所有匹配模式的键，返回删除数量。"""
        keys = await self.scan_keys(pattern)
        if not keys:
            return 0
        return await self.delete(*keys)

    async def dbsize(self) -> int:
        return await self.client.dbsize()

    async def memory_info(self) -> dict[str, Any]:
        info = await self.client.info("memory")
        return {
            "used_memory": info.get("used_memory", 0),
            "used_memory_peak": info.get("used_memory_peak", 0),
        }

    # ============ 计数器操作 ============

    async def incr(self, key: str, amount: int = 1) -> int:
        """增加计数器。"""
        return await self.client.incrby(key, amount)

    # ============ 速率限制 ============

    async def rate_limit_check(
        self,
        resource: str,
        identifier: str,
        window: str,
        limit: int,
        ttl: int = 60,
    ) -> tuple[bool, int]:
        """检查并更新速率限制。

        Args:
            resource: 资源类型
            identifier: 标识符
            window: 时间窗口
            limit: 限制数量
            ttl: key 过期时间（秒）

        Returns:
            (是否允许, 当前计数)
        """
        key = RedisKeys.rate_limit(resource, identifier, window)
        current = await self.incr(key)

        # 首次创建时设置过期时间
        if current == 1:
            await self.expire(key, ttl)

        return current <= limit, current


# 全局 Redis 客户端实例
redis_client = RedisClient()
