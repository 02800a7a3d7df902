"""Source module dependencies."""

from fastapi import Depends

from balanced_news.core.config import settings
from balanced_news.modules.sources.application.catalog import SourceCatalog
from balanced_news.modules.sources.application.selector import SourceSelector
from balanced_news.modules.sources.infrastructure.catalog_loader import (
    BUILTIN_SOURCES,
    JsonCatalogLoader,
)
from balanced_news.modules.sources.infrastructure.catalog_watcher import (
    CatalogFileWatcher,
)

catalog_loader = JsonCatalogLoader(settings.SOURCES_FILE, settings.MIN_SOURCES_COUNT)

# 进程内唯一的 catalog，lifespan 启动时 reload
source_catalog = SourceCatalog(catalog_loader, BUILTIN_SOURCES)


def get_source_catalog() -> SourceCatalog:
    return source_catalog


def get_source_selector(
    catalog: SourceCatalog = Depends(get_source_catalog),
) -> SourceSelector:
    return SourceSelector(catalog)


def build_catalog_watcher() -> CatalogFileWatcher:
    return CatalogFileWatcher(catalog_loader, source_catalog)
