"""Feed module dependencies."""

from fastapi import Depends

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.cache import (
    TieredCache,
    get_tiered_cache,
    tiered_cache,
)
from balanced_news.core.infrastructure.redis import redis_client
from balanced_news.modules.feed.application.feed_assembler import FeedAssembler
from balanced_news.modules.feed.application.rate_limit import FeedRateLimiter
from balanced_news.modules.feed.infrastructure.newsapi_provider import (
    NewsApiArticleProvider,
)
from balanced_news.modules.sources.application.selector import SourceSelector
from balanced_news.modules.sources.infrastructure.dependencies import (
    get_source_selector,
)

article_provider = NewsApiArticleProvider()
feed_rate_limiter = FeedRateLimiter(
    redis_client if settings.REDIS_ENABLED else None,
    backend_available=lambda: tiered_cache.connected,
)


def get_article_provider() -> NewsApiArticleProvider:
    return article_provider


def get_feed_assembler(
    selector: SourceSelector = Depends(get_source_selector),
    provider: NewsApiArticleProvider = Depends(get_article_provider),
    cache: TieredCache = Depends(get_tiered_cache),
) -> FeedAssembler:
    return FeedAssembler(selector, provider, cache)


def get_feed_rate_limiter() -> FeedRateLimiter:
    return feed_rate_limiter
