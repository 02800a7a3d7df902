"""Source catalog domain models and ports."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from balanced_news.modules.sources.domain.entities import CatalogStage, Source


@dataclass(frozen=True)
class LoadedCatalog:
    """Validated catalog payload."""

    sources: tuple[Source, ...]
    total_records: int
    origin: str


@dataclass(frozen=True)
class CatalogSnapshot:
    """An immutable view of the catalog; replaced wholesale on reload."""

    sources: tuple[Source, ...]
    stage: CatalogStage
    origin: str
    total_records: int
    loaded_at: datetime

    def active_sources(self) -> tuple[Source, ...]:
        return tuple(s for s in self.sources if s.active)


class CatalogLoader(Protocol):
    """Port for loading the source catalog."""

    def load(self) -> LoadedCatalog: ...
