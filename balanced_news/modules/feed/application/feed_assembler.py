"""Feed assembly.

流程：
1. 坐标按固定精度取整生成 cache key，相近坐标共享缓存
2. 非强制刷新时先查缓存，命中直接返回
3. 未命中时挑选信源，向文章提供方批量拉取文章
4. 每个信源匹配一篇未使用的文章；没有匹配时借用任意未使用文章并标记 is_fallback
5. 至少有一张卡片时写入缓存

文章提供方失败时异常向上抛出，本次请求不写缓存。
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from loguru import logger
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.cache import TieredCache
from balanced_news.core.infrastructure.logging import BusinessEvents
from balanced_news.core.infrastructure.redis import RedisKeys
from balanced_news.modules.feed.domain.entities import FeedCard, ProviderArticle
from balanced_news.modules.feed.domain.ports import ArticleProvider
from balanced_news.modules.sources.application.selector import SourceSelector
from balanced_news.modules.sources.domain.bias import BiasCoordinate
from balanced_news.modules.sources.domain.entities import SelectedSource

_cards_adapter = TypeAdapter(list[FeedCard])


def match_articles(
    sources: Sequence[SelectedSource],
    articles: Sequence[ProviderArticle],
) -> list[FeedCard]:
    """按信源顺序为每个信源匹配一篇文章，同一篇文章只使用一次。"""
    used_urls: set[str] = set()
    cards: list[FeedCard] = []
    for source in sources:
        article = next(
            (a for a in articles if a.source.id == source.id and a.url not in used_urls),
            None,
        )
        is_fallback = False
        if article is None:
            article = next((a for a in articles if a.url not in used_urls), None)
            is_fallback = article is not None
            if is_fallback:
                logger.warning(
                    f"Used fallback article for source {source.id}: {article.title}"
                )

        if article is None:
            logger.warning(f"No articles available for source {source.id}")
            continue

        used_urls.add(article.url)
        cards.append(FeedCard.build(source, article, is_fallback=is_fallback))
    return cards


def dump_cards(cards: list[FeedCard]) -> str:
    return _cards_adapter.dump_json(cards, by_alias=True).decode()


def load_cards(payload: str) -> list[FeedCard]:
    return _cards_adapter.validate_json(payload)


class FeedAssembler:
    """组装 feed 卡片列表。"""

    def __init__(
        self,
        selector: SourceSelector,
        provider: ArticleProvider,
        cache: TieredCache,
        *,
        ttl_sec: int | None = None,
        precision: int | None = None,
    ):
        self._selector = selector
        self._provider = provider
        self._cache = cache
        self.ttl_sec = ttl_sec if ttl_sec is not None else settings.CACHE_TTL_FEED
        self.precision = (
            precision if precision is not None else settings.BIAS_COORDINATE_PRECISION
        )

    def cache_key(self, bias: BiasCoordinate) -> str:
        return RedisKeys.feed(bias.x, bias.y, self.precision)

    async def get_feed(
        self,
        bias: BiasCoordinate,
        force_refresh: bool = False,
    ) -> list[FeedCard]:
        started = time.perf_counter()
        cache_key = self.cache_key(bias)

        if not force_refresh:
            cached = await self._read_cached(cache_key)
            if cached is not None:
                BusinessEvents.feed_served(
                    cache_key=cache_key,
                    card_count=len(cached),
                    cache_hit=True,
                    duration_ms=_elapsed_ms(started),
                )
                return cached

        sources = self._selector.pick(bias)
        if not sources:
            logger.warning(f"No sources selected for {cache_key}")
            return []

        articles = await self._provider.fetch_articles_for_sources(
            [s.id for s in sources]
        )
        logger.info(
            f"Retrieved {len(articles)} articles for sources {[s.id for s in sources]}"
        )

        cards = match_articles(sources, articles)
        if cards:
            await self._cache.set(cache_key, dump_cards(cards), self.ttl_sec)

        BusinessEvents.feed_served(
            cache_key=cache_key,
            card_count=len(cards),
            cache_hit=False,
            fallback_cards=sum(1 for c in cards if c.is_fallback),
            duration_ms=_elapsed_ms(started),
        )
        return cards

    async def _read_cached(self, cache_key: str) -> list[FeedCard] | None:
        payload = await self._cache.get(cache_key)
        if payload is None:
            return None
        try:
            return load_cards(payload)
        except PydanticValidationError as e:
            logger.warning(f"Discarding unreadable cached feed {cache_key}: {e}")
            await self._cache.delete(cache_key)
            return None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
