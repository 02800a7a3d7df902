"""统一的健康检查类型定义。

所有基础设施组件的健康检查都使用这些类型，确保类型安全和一致性。
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """健康检查状态枚举。"""

    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"
    DEGRADED = "degraded"


class RedisHealthResult(BaseModel):
    """Redis 健康检查结果。"""

    status: HealthStatus = Field(..., description="健康状态")
    connected: bool = Field(..., description="是否已连接")
    version: str | None = Field(None, description="Redis 版本")
    error: str | None = Field(None, description="错误信息")

    def to_dict(self) -> dict[str, str | bool | None]:
        """转换为字典（用于 API 响应）。"""
        return self.model_dump(mode="json", exclude_none=False)


class CacheHealthResult(BaseModel):
    """两级缓存健康检查结果。"""

    status: HealthStatus = Field(..., description="健康状态")
    redis_connected: bool = Field(..., description="持久层是否已连接")
    redis_configured: bool = Field(..., description="是否配置了持久层")
    memory_size: int = Field(..., description="内存层当前条目数")
    memory_max_size: int = Field(..., description="内存层容量")
    round_trip_ok: bool = Field(..., description="读写删除自检是否通过")
    error: str | None = Field(None, description="错误信息")

    def to_dict(self) -> dict[str, Any]:
        """转换为字典（用于 API 响应）。"""
        return self.model_dump(mode="json", exclude_none=False)


class CatalogHealthResult(BaseModel):
    """信源 catalog 健康检查结果。"""

    status: HealthStatus = Field(..., description="健康状态")
    stage: str = Field(..., description="当前 catalog 来源阶段")
    source_count: int = Field(..., description="信源总数")
    active_sources: int = Field(..., description="启用的信源数")
    min_required: int = Field(..., description="最少信源数")
    categories: int = Field(..., description="分类数量")
    loaded_at: str | None = Field(None, description="加载时间")

    def to_dict(self) -> dict[str, Any]:
        """转换为字典（用于 API 响应）。"""
        return self.model_dump(mode="json", exclude_none=False)
