"""Source domain entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from balanced_news.modules.sources.domain.bias import BiasCoordinate


class SourceRole(StrEnum):
    """信源在一次选择结果中的角色。"""

    FRIENDLY = "friendly"
    OPPOSING = "opposing"
    NEUTRAL_FALLBACK = "neutral-fallback"


class CatalogStage(StrEnum):
    """Catalog 兜底状态机的阶段。"""

    PRIMARY = "primary"
    CATALOG_FALLBACK = "catalog_fallback"
    EMERGENCY_FALLBACK = "emergency_fallback"


@dataclass(frozen=True)
class Source:
    """Catalog 中的一个新闻信源，加载后不可变。"""

    id: str
    name: str
    coordinate: BiasCoordinate
    category: str = "general"
    language: str = "en"
    country: str = "us"
    active: bool = True


@dataclass(frozen=True, kw_only=True)
class SelectedSource(Source):
    """一次选择请求产生的信源（Source + 角色与距离）。"""

    role: SourceRole
    distance: float
    is_fallback: bool = False
    is_emergency: bool = field(default=False, compare=False)

    @classmethod
    def from_source(
        cls,
        source: Source,
        *,
        role: SourceRole,
        distance: float,
        is_fallback: bool = False,
        is_emergency: bool = False,
    ) -> SelectedSource:
        return cls(
            id=source.id,
            name=source.name,
            coordinate=source.coordinate,
            category=source.category,
            language=source.language,
            country=source.country,
            active=source.active,
            role=role,
            distance=distance,
            is_fallback=is_fallback,
            is_emergency=is_emergency,
        )
