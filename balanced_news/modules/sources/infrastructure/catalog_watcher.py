"""Catalog 文件变更监听（轮询 mtime）。"""

from __future__ import annotations

from loguru import logger

from balanced_news.modules.sources.application.catalog import SourceCatalog
from balanced_news.modules.sources.infrastructure.catalog_loader import JsonCatalogLoader


class CatalogFileWatcher:
    """文件 mtime 变化时触发 catalog 重载，由调度器周期调用 `check()`。"""

    def __init__(self, loader: JsonCatalogLoader, catalog: SourceCatalog):
        self._loader = loader
        self._catalog = catalog
        self._last_mtime = loader.mtime()

    def check(self) -> bool:
        """检查一次，发生重载时返回 True。"""
        mtime = self._loader.mtime()
        if mtime is None or mtime == self._last_mtime:
            return False
        self._last_mtime = mtime
        logger.info(f"Sources file changed, reloading: {self._loader.path}")
        self._catalog.reload()
        return True
