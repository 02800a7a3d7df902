"""Feed domain ports."""

from collections.abc import Sequence
from typing import Protocol

from balanced_news.modules.feed.domain.entities import ProviderArticle


class ArticleProvider(Protocol):
    """Port for the upstream article provider.

    不保证返回顺序，也不保证每个信源都有文章。
    """

    async def fetch_articles_for_sources(
        self, source_ids: Sequence[str]
    ) -> list[ProviderArticle]: ...
