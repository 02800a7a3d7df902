"""Source catalog service.

Catalog 只有一份共享可变状态：当前快照的引用。reload 在后台构造新快照后整体替换，
读取方在一次调用开始时取一次引用即可，不会看到新旧混合的数据。

加载按顺序尝试兜底策略：
    PRIMARY (JSON 文件) -> CATALOG_FALLBACK (内置 catalog)
选择阶段的 EMERGENCY_FALLBACK 由 SourceSelector 处理。
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.health import CatalogHealthResult, HealthStatus
from balanced_news.core.infrastructure.logging import BusinessEvents
from balanced_news.modules.sources.domain.catalog import (
    CatalogLoader,
    CatalogSnapshot,
    LoadedCatalog,
)
from balanced_news.modules.sources.domain.entities import CatalogStage, Source
from balanced_news.modules.sources.domain.exceptions import CatalogError

BUILTIN_ORIGIN = "builtin"


class SourceCatalog:
    """持有当前 catalog 快照，负责加载、重载与统计。"""

    def __init__(
        self,
        loader: CatalogLoader,
        builtin_sources: Sequence[Source],
        min_sources: int | None = None,
    ):
        if not builtin_sources:
            raise ValueError("builtin_sources must not be empty")
        self._loader = loader
        self._builtin = tuple(builtin_sources)
        self.min_sources = (
            min_sources if min_sources is not None else settings.MIN_SOURCES_COUNT
        )
        self._snapshot: CatalogSnapshot | None = None
        # 单写者：并发 reload 串行执行，读取方不加锁
        self._write_lock = threading.Lock()

    @property
    def builtin_sources(self) -> tuple[Source, ...]:
        return self._builtin

    def snapshot(self) -> CatalogSnapshot:
        """返回当前快照，首次访问时加载。"""
        snapshot = self._snapshot
        if snapshot is None:
            snapshot = self.reload()
        return snapshot

    def active_sources(self) -> tuple[Source, ...]:
        return self.snapshot().active_sources()

    def reload(self) -> CatalogSnapshot:
        """重新加载 catalog 并整体替换当前快照。"""
        with self._write_lock:
            snapshot = self._resolve()
            self._snapshot = snapshot
        return snapshot

    def _strategies(self) -> list[tuple[CatalogStage, Callable[[], LoadedCatalog]]]:
        return [
            (CatalogStage.PRIMARY, self._loader.load),
            (CatalogStage.CATALOG_FALLBACK, self._load_builtin),
        ]

    def _load_builtin(self) -> LoadedCatalog:
        return LoadedCatalog(
            sources=self._builtin,
            total_records=len(self._builtin),
            origin=BUILTIN_ORIGIN,
        )

    def _resolve(self) -> CatalogSnapshot:
        failure: CatalogError | None = None
        for stage, strategy in self._strategies():
            try:
                loaded = strategy()
            except CatalogError as e:
                logger.error(f"Failed to load news sources ({stage}): {e.message}")
                failure = e
                continue

            snapshot = CatalogSnapshot(
                sources=loaded.sources,
                stage=stage,
                origin=loaded.origin,
                total_records=loaded.total_records,
                loaded_at=datetime.now(UTC),
            )
            if failure is not None:
                BusinessEvents.catalog_fallback_used(
                    reason=failure.message,
                    source_count=len(snapshot.sources),
                )
            BusinessEvents.catalog_loaded(
                origin=snapshot.origin,
                stage=stage.value,
                source_count=len(snapshot.sources),
            )
            return snapshot

        # 内置 catalog 不会失败，除非策略表被改坏
        raise CatalogError("no catalog strategy produced a result")

    # ============ 统计与健康检查 ============

    def stats(self) -> dict[str, Any]:
        snapshot = self.snapshot()
        sources = snapshot.sources
        xs = [s.coordinate.x for s in sources]
        ys = [s.coordinate.y for s in sources]
        return {
            "total": len(sources),
            "total_records": snapshot.total_records,
            "active": len(snapshot.active_sources()),
            "by_category": dict(Counter(s.category for s in sources)),
            "by_language": dict(Counter(s.language for s in sources)),
            "by_country": dict(Counter(s.country for s in sources)),
            "coordinate_ranges": {
                "x": {"min": min(xs, default=None), "max": max(xs, default=None)},
                "y": {"min": min(ys, default=None), "max": max(ys, default=None)},
            },
            "stage": snapshot.stage.value,
            "origin": snapshot.origin,
            "loaded_at": snapshot.loaded_at.isoformat(),
        }

    def health(self) -> CatalogHealthResult:
        snapshot = self.snapshot()
        active = len(snapshot.active_sources())
        if active < self.min_sources:
            status = HealthStatus.ERROR
        elif snapshot.stage is not CatalogStage.PRIMARY:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.OK
        return CatalogHealthResult(
            status=status,
            stage=snapshot.stage.value,
            source_count=len(snapshot.sources),
            active_sources=active,
            min_required=self.min_sources,
            categories=len({s.category for s in snapshot.sources}),
            loaded_at=snapshot.loaded_at.isoformat(),
        )
