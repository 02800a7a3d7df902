"""Source module application dependencies."""

from typing import NoReturn

from balanced_news.modules.sources.application.catalog import SourceCatalog
from balanced_news.modules.sources.application.selector import SourceSelector


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_source_catalog() -> SourceCatalog:
    _missing_dependency("SourceCatalog")


async def get_source_selector() -> SourceSelector:
    _missing_dependency("SourceSelector")
