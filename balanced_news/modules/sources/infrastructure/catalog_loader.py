"""JSON 信源 catalog 加载与校验。"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from balanced_news.core.config import settings
from balanced_news.modules.sources.domain.bias import BIAS_MAX, BIAS_MIN, BiasCoordinate
from balanced_news.modules.sources.domain.catalog import LoadedCatalog
from balanced_news.modules.sources.domain.entities import Source
from balanced_news.modules.sources.domain.exceptions import (
    CatalogError,
    InsufficientSourcesError,
)

# 内置 catalog：主 catalog 不可用时的兜底，顺序即紧急列表的顺序
BUILTIN_SOURCES: tuple[Source, ...] = (
    Source(id="bbc-news", name="BBC News", coordinate=BiasCoordinate(-0.2, 0.1)),
    Source(id="cnn", name="CNN", coordinate=BiasCoordinate(-0.5, 0.3)),
    Source(id="fox-news", name="Fox News", coordinate=BiasCoordinate(0.7, -0.2)),
    Source(id="reuters", name="Reuters", coordinate=BiasCoordinate(0.1, 0.4)),
    Source(
        id="associated-press",
        name="Associated Press",
        coordinate=BiasCoordinate(0.0, 0.2),
    ),
    Source(id="usa-today", name="USA Today", coordinate=BiasCoordinate(0.0, 0.0)),
)


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, int | float)


def _optional_str(raw: dict[str, Any], field: str, default: str) -> str:
    value = raw.get(field)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def parse_source_record(raw: Any, index: int) -> Source | None:
    """校验单条记录，非法记录记录日志并返回 None。"""
    if not isinstance(raw, dict):
        logger.warning(f"Source at index {index}: record must be an object")
        return None

    source_id = raw.get("id")
    if not isinstance(source_id, str) or not source_id.strip():
        logger.warning(f"Source at index {index}: missing or invalid 'id'")
        return None

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        logger.warning(f"Source at index {index}: missing or invalid 'name'")
        return None

    x, y = raw.get("x"), raw.get("y")
    if not _is_number(x) or not _is_number(y):
        logger.warning(f"Source at index {index}: missing or invalid coordinates")
        return None

    try:
        coordinate = BiasCoordinate(float(x), float(y))
    except OverflowError:
        logger.warning(f"Source at index {index}: coordinates are not finite numbers")
        return None
    if not coordinate.is_in_range():
        logger.warning(
            f"Source at index {index}: coordinates out of range "
            f"[{BIAS_MIN:g}, {BIAS_MAX:g}]"
        )
        return None

    return Source(
        id=source_id.strip(),
        name=name.strip(),
        coordinate=coordinate,
        category=_optional_str(raw, "category", "general"),
        language=_optional_str(raw, "language", "en"),
        country=_optional_str(raw, "country", "us"),
        active=raw.get("active") is not False,
    )


def parse_catalog_payload(
    payload: Any,
    *,
    min_sources: int,
    origin: str = "<memory>",
) -> LoadedCatalog:
    """校验 catalog JSON，返回去重后的启用信源。

    Raises:
        CatalogError: payload 不是数组
        InsufficientSourcesError: 有效且启用的信源少于 min_sources
    """
    if not isinstance(payload, list):
        raise CatalogError("sources data must be a JSON array")

    seen: set[str] = set()
    duplicates: list[str] = []
    sources: list[Source] = []
    for index, raw in enumerate(payload):
        source = parse_source_record(raw, index)
        if source is None or not source.active:
            continue
        if source.id in seen:
            duplicates.append(source.id)
            continue
        seen.add(source.id)
        sources.append(source)

    if duplicates:
        logger.warning(f"Duplicate source IDs ignored: {duplicates}")

    if len(sources) < min_sources:
        raise InsufficientSourcesError(found=len(sources), required=min_sources)

    logger.info(
        f"Sources validation completed: total={len(payload)}, valid={len(sources)}, "
        f"filtered={len(payload) - len(sources)}"
    )
    return LoadedCatalog(
        sources=tuple(sources),
        total_records=len(payload),
        origin=origin,
    )


class JsonCatalogLoader:
    """从 JSON 文件读取 catalog。"""

    def __init__(self, path: Path | None = None, min_sources: int | None = None):
        self.path = Path(path or settings.SOURCES_FILE)
        self.min_sources = (
            min_sources if min_sources is not None else settings.MIN_SOURCES_COUNT
        )

    def load(self) -> LoadedCatalog:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CatalogError(f"cannot read {self.path}: {e}") from e
        return parse_catalog_payload(
            payload,
            min_sources=self.min_sources,
            origin=str(self.path),
        )

    def mtime(self) -> float | None:
        """文件修改时间，文件不存在时返回 None。"""
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None
