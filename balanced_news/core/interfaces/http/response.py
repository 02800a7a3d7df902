"""Standard API response models."""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response envelope（/feed 除外，其余接口统一使用）。"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    code: int = 200
    message: str = "Operation successful"
    data: T | None = None
    meta: dict[str, Any] | None = None
    timestamp: str = Field(default_factory=_utc_now)

    @classmethod
    def success(
        cls,
        data: T = None,
        message: str = "Operation successful",
        meta: dict[str, Any] | None = None,
    ) -> "ApiResponse[T]":
        return cls(data=data, message=message, meta=meta)

    @classmethod
    def items(cls, items: Sequence[Any], **meta: Any) -> "ApiResponse[T]":
        """列表响应，meta 中附带 count。"""
        return cls(data=list(items), meta={"count": len(items), **meta})
