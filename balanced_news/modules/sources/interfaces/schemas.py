"""Source API schemas."""

from typing import Any

from fastapi import Query
from pydantic import BaseModel, Field

from balanced_news.core.config import settings
from balanced_news.modules.sources.domain.bias import BiasCoordinate
from balanced_news.modules.sources.domain.entities import SelectedSource, Source


def get_bias_coordinate(
    x: float = Query(..., description="经济轴偏好 [-1, 1]"),
    y: float = Query(..., description="社会轴偏好 [-1, 1]"),
) -> BiasCoordinate:
    """从查询参数解析偏好坐标，范围校验策略由 BIAS_VALIDATION_MODE 决定。"""
    return BiasCoordinate.from_input(
        x, y, strict=settings.BIAS_VALIDATION_MODE == "strict"
    )


class SourceResponse(BaseModel):
    """Source response."""

    id: str
    name: str
    x: float
    y: float
    category: str
    language: str
    country: str
    active: bool

    @classmethod
    def from_entity(cls, source: Source) -> "SourceResponse":
        return cls(
            id=source.id,
            name=source.name,
            x=source.coordinate.x,
            y=source.coordinate.y,
            category=source.category,
            language=source.language,
            country=source.country,
            active=source.active,
        )


class SelectedSourceResponse(SourceResponse):
    """Selected source response."""

    role: str = Field(..., description="friendly / opposing / neutral-fallback")
    distance: float
    is_fallback: bool
    is_emergency: bool

    @classmethod
    def from_selected(cls, source: SelectedSource) -> "SelectedSourceResponse":
        return cls(
            **SourceResponse.from_entity(source).model_dump(),
            role=source.role.value,
            distance=round(source.distance, 4),
            is_fallback=source.is_fallback,
            is_emergency=source.is_emergency,
        )


class SourceStatsResponse(BaseModel):
    """Catalog statistics."""

    total: int
    total_records: int
    active: int
    by_category: dict[str, int]
    by_language: dict[str, int]
    by_country: dict[str, int]
    coordinate_ranges: dict[str, dict[str, Any]]
    stage: str
    origin: str
    loaded_at: str
