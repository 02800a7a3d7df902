"""Balanced source selection.

给定用户偏好坐标，挑选一组平衡的信源：
1. friendly: 距用户坐标最近的信源
2. opposing: 距镜像坐标 (-x, -y) 最近的信源（排除已选）
3. 数量不足时从原点 (0, 0) 就近补齐，仍不足则用内置 catalog 补齐，均标记为 fallback
4. 可选的多样性重排，最后截断到 friendly_count + opposing_count

任何内部异常都会转为紧急兜底列表，选择过程不向调用方抛错。
"""

from __future__ import annotations

import math
import re
import time
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.logging import BusinessEvents
from balanced_news.modules.sources.application.catalog import SourceCatalog
from balanced_news.modules.sources.domain.bias import ORIGIN, BiasCoordinate
from balanced_news.modules.sources.domain.entities import (
    CatalogStage,
    SelectedSource,
    Source,
    SourceRole,
)
from balanced_news.modules.sources.domain.exceptions import SelectionError

_ORG_SUFFIX_RE = re.compile(
    r"\s+(news|media|network|corporation|inc|corp|llc)$", re.IGNORECASE
)
_ORG_ARTICLE_RE = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)

EMERGENCY_LIST_SIZE = 4


def organization_key(name: str) -> str:
    """归一化机构名：小写，去掉公司后缀和开头冠词。"""
    key = _ORG_SUFFIX_RE.sub("", name.lower())
    key = _ORG_ARTICLE_RE.sub("", key)
    return key.strip()


def diversity_key(source: Source) -> str:
    return f"{organization_key(source.name)}:{source.category or 'general'}"


def diversify(picks: list[SelectedSource]) -> list[SelectedSource]:
    """重排，使重复机构的信源靠后；只调整顺序，不丢弃信源。"""
    seen: set[str] = set()
    diverse: list[SelectedSource] = []
    for pick in picks:
        key = diversity_key(pick)
        if key not in seen or len(diverse) < 2:
            diverse.append(pick)
            seen.add(key)

    chosen = {p.id for p in diverse}
    diverse.extend(p for p in picks if p.id not in chosen)
    return diverse


@dataclass(frozen=True)
class _Candidate:
    source: Source
    distance: float


class SourceSelector:
    """根据偏好坐标挑选 friendly / opposing 信源。"""

    def __init__(
        self,
        catalog: SourceCatalog,
        *,
        max_search_radius: float | None = None,
        friendly_count: int | None = None,
        opposing_count: int | None = None,
        ensure_diversity: bool | None = None,
    ):
        self._catalog = catalog
        self.max_search_radius = (
            max_search_radius
            if max_search_radius is not None
            else settings.MAX_SEARCH_RADIUS
        )
        self.friendly_count = (
            friendly_count
            if friendly_count is not None
            else settings.SELECTION_FRIENDLY_COUNT
        )
        self.opposing_count = (
            opposing_count
            if opposing_count is not None
            else settings.SELECTION_OPPOSING_COUNT
        )
        self.ensure_diversity = (
            ensure_diversity
            if ensure_diversity is not None
            else settings.SELECTION_ENSURE_DIVERSITY
        )

    def pick(
        self,
        bias: BiasCoordinate,
        friendly_count: int | None = None,
        opposing_count: int | None = None,
        category_filter: str | None = None,
        ensure_diversity: bool | None = None,
    ) -> list[SelectedSource]:
        """挑选一组平衡的信源。

        Args:
            bias: 用户偏好坐标，超出 [-1, 1] 只记录日志
            friendly_count: friendly 信源数量
            opposing_count: opposing 信源数量
            category_filter: 仅在该分类中挑选（内置补齐不受此限制）
            ensure_diversity: 是否做机构多样性重排

        Returns:
            最多 friendly_count + opposing_count 个信源，id 互不重复
        """
        friendly_count = self.friendly_count if friendly_count is None else friendly_count
        opposing_count = self.opposing_count if opposing_count is None else opposing_count
        if friendly_count < 0 or opposing_count < 0:
            raise ValueError("friendly_count and opposing_count must be >= 0")
        diversity = self.ensure_diversity if ensure_diversity is None else ensure_diversity

        started = time.perf_counter()
        try:
            picks = self._select(
                bias, friendly_count, opposing_count, category_filter, diversity
            )
        except Exception as e:
            logger.exception(f"Error picking sources for ({bias.x}, {bias.y}): {e}")
            return self.emergency_sources(friendly_count, opposing_count, reason=str(e))

        BusinessEvents.sources_picked(
            x=bias.x,
            y=bias.y,
            source_ids=[p.id for p in picks],
            role_counts=dict(Counter(p.role.value for p in picks)),
            duration_ms=int((time.perf_counter() - started) * 1000),
            category_filter=category_filter,
        )
        return picks

    def _select(
        self,
        bias: BiasCoordinate,
        friendly_count: int,
        opposing_count: int,
        category_filter: str | None,
        diversity: bool,
    ) -> list[SelectedSource]:
        if not (math.isfinite(bias.x) and math.isfinite(bias.y)):
            raise SelectionError(f"Invalid bias coordinates: x={bias.x}, y={bias.y}")
        if not bias.is_in_range():
            logger.warning(f"Coordinates outside normal range: ({bias.x}, {bias.y})")

        # 整个选择过程只取一次快照引用
        active = self._catalog.snapshot().active_sources()
        if not active:
            raise SelectionError("catalog has no active sources")

        total = friendly_count + opposing_count
        used: set[str] = set()
        picks: list[SelectedSource] = []

        def take(
            candidates: list[_Candidate],
            role: SourceRole,
            is_fallback: bool = False,
        ) -> None:
            for candidate in candidates:
                used.add(candidate.source.id)
                picks.append(
                    SelectedSource.from_source(
                        candidate.source,
                        role=role,
                        distance=candidate.distance,
                        is_fallback=is_fallback,
                    )
                )

        take(
            self._nearest(active, bias, friendly_count, used, category_filter),
            SourceRole.FRIENDLY,
        )
        take(
            self._nearest(
                active, bias.mirrored(), opposing_count, used, category_filter
            ),
            SourceRole.OPPOSING,
        )

        if len(picks) < total:
            fill = self._nearest(
                active, ORIGIN, total - len(picks), used, category_filter
            )
            take(fill, SourceRole.NEUTRAL_FALLBACK, is_fallback=True)
            if fill:
                logger.warning(
                    "Used fallback sources to fill remaining slots: "
                    f"{[c.source.id for c in fill]}"
                )

        if len(picks) < total:
            top_up = self._nearest(
                self._catalog.builtin_sources, ORIGIN, total - len(picks), used, None
            )
            take(top_up, SourceRole.NEUTRAL_FALLBACK, is_fallback=True)
            if top_up:
                logger.warning(
                    "Catalog too small, topped up from builtin sources: "
                    f"{[c.source.id for c in top_up]}"
                )

        if diversity and len(picks) > 1:
            picks = diversify(picks)

        return picks[:total]

    def _nearest(
        self,
        sources: Iterable[Source],
        point: BiasCoordinate,
        n: int,
        exclude: set[str],
        category_filter: str | None,
    ) -> list[_Candidate]:
        if n <= 0:
            return []
        candidates = [
            _Candidate(source=s, distance=point.distance_to(s.coordinate))
            for s in sources
            if s.active
            and s.id not in exclude
            and (category_filter is None or s.category == category_filter)
        ]
        candidates = [c for c in candidates if c.distance <= self.max_search_radius]
        # sorted() 稳定，距离相同时保持 catalog 顺序
        candidates = sorted(candidates, key=lambda c: c.distance)
        return candidates[:n]

    def emergency_sources(
        self,
        friendly_count: int | None = None,
        opposing_count: int | None = None,
        reason: str = "",
    ) -> list[SelectedSource]:
        """紧急兜底列表：内置 catalog 的前若干个信源。"""
        friendly_count = self.friendly_count if friendly_count is None else friendly_count
        opposing_count = self.opposing_count if opposing_count is None else opposing_count
        builtin = self._catalog.builtin_sources
        count = min(friendly_count + opposing_count or EMERGENCY_LIST_SIZE, len(builtin))

        fallback = [
            SelectedSource.from_source(
                source,
                role=SourceRole.FRIENDLY if index < friendly_count else SourceRole.OPPOSING,
                distance=0.0,
                is_fallback=True,
                is_emergency=True,
            )
            for index, source in enumerate(builtin[:count])
        ]
        BusinessEvents.selection_fallback_used(
            reason=reason or "emergency",
            source_ids=[s.id for s in fallback],
            stage=CatalogStage.EMERGENCY_FALLBACK.value,
        )
        return fallback
