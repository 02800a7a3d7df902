"""Tests for feed assembly and article matching."""

import json
from unittest.mock import AsyncMock

import pytest

from balanced_news.core.infrastructure.cache import MemoryCache, TieredCache
from balanced_news.modules.feed.application.feed_assembler import (
    FeedAssembler,
    dump_cards,
    load_cards,
    match_articles,
)
from balanced_news.modules.feed.domain.entities import ArticleSource, ProviderArticle
from balanced_news.modules.feed.domain.exceptions import UpstreamProviderError
from balanced_news.modules.sources.application.selector import SourceSelector
from balanced_news.modules.sources.domain.bias import BiasCoordinate
from balanced_news.modules.sources.domain.entities import SelectedSource, SourceRole
from balanced_news.modules.sources.infrastructure.catalog_loader import BUILTIN_SOURCES

pytestmark = pytest.mark.anyio


def _article(source_id: str, index: int = 0) -> ProviderArticle:
    return ProviderArticle(
        title=f"Headline {index} from {source_id}",
        url=f"https://{source_id}.example.com/{index}",
        url_to_image=f"https://{source_id}.example.com/{index}.jpg",
        published_at="2099-01-01T12:00:00Z",
        description=f"Summary {index}",
        source=ArticleSource(id=source_id, name=source_id.upper()),
    )


@pytest.fixture
def selector(default_catalog) -> SourceSelector:
    return SourceSelector(
        default_catalog, friendly_count=2, opposing_count=2, ensure_diversity=True
    )


@pytest.fixture
def provider() -> AsyncMock:
    provider = AsyncMock()
    provider.fetch_articles_for_sources.return_value = [
        _article(source_id)
        for source_id in ("usa-today", "associated-press", "bbc-news", "reuters")
    ]
    return provider


@pytest.fixture
def memory_cache() -> TieredCache:
    return TieredCache(None, MemoryCache(max_size=10))


@pytest.fixture
def assembler(selector, provider, memory_cache) -> FeedAssembler:
    return FeedAssembler(selector, provider, memory_cache, ttl_sec=1800, precision=3)


# ============ 文章匹配 ============


def _selected(source_id: str, role: SourceRole = SourceRole.FRIENDLY) -> SelectedSource:
    source = next(s for s in BUILTIN_SOURCES if s.id == source_id)
    return SelectedSource.from_source(source, role=role, distance=0.0)


def test_match_prefers_articles_from_the_same_source() -> None:
    sources = [_selected("cnn"), _selected("fox-news", SourceRole.OPPOSING)]
    articles = [_article("fox-news"), _article("cnn")]

    cards = match_articles(sources, articles)

    assert [(c.source_id, c.url) for c in cards] == [
        ("cnn", "https://cnn.example.com/0"),
        ("fox-news", "https://fox-news.example.com/0"),
    ]
    assert cards[1].role is SourceRole.OPPOSING
    assert not any(c.is_fallback for c in cards)


def test_match_borrows_unused_article_and_skips_when_exhausted() -> None:
    sources = [_selected("cnn"), _selected("bbc-news"), _selected("reuters")]
    articles = [_article("cnn", 0), _article("cnn", 1)]

    cards = match_articles(sources, articles)

    assert len(cards) == 2
    assert cards[0].url == "https://cnn.example.com/0"
    assert cards[0].is_fallback is False
    # 借用的文章挂在请求的信源名下
    assert cards[1].source_id == "bbc-news"
    assert cards[1].url == "https://cnn.example.com/1"
    assert cards[1].is_fallback is True
    assert len({c.article_id for c in cards}) == len(cards)


def test_cards_serialize_as_camel_case() -> None:
    card = match_articles([_selected("cnn")], [_article("cnn")])[0]
    data = json.loads(dump_cards([card]))[0]

    assert data == {
        "articleId": "https://cnn.example.com/0",
        "title": "Headline 0 from cnn",
        "sourceId": "cnn",
        "sourceName": "CNN",
        "imageUrl": "https://cnn.example.com/0.jpg",
        "url": "https://cnn.example.com/0",
        "publishedAt": "2099-01-01T12:00:00Z",
        "role": "friendly",
        "description": "Summary 0",
        "isFallback": False,
    }
    assert load_cards(dump_cards([card])) == [card]


# ============ FeedAssembler ============


async def test_cache_key_rounds_coordinates(assembler: FeedAssembler) -> None:
    assert assembler.cache_key(BiasCoordinate(0.12341, -0.0001)) == "feed:0.123:0.000"


async def test_second_request_is_served_from_cache(
    assembler: FeedAssembler, provider: AsyncMock, memory_cache: TieredCache
) -> None:
    bias = BiasCoordinate(0.0, 0.0)

    first = await assembler.get_feed(bias)
    second = await assembler.get_feed(BiasCoordinate(0.0001, -0.0001))

    assert [c.source_id for c in first] == [
        "usa-today",
        "associated-press",
        "bbc-news",
        "reuters",
    ]
    assert second == first
    provider.fetch_articles_for_sources.assert_awaited_once_with(
        ["usa-today", "associated-press", "bbc-news", "reuters"]
    )
    assert await memory_cache.get("feed:0.000:0.000") is not None


async def test_force_refresh_bypasses_cache(
    assembler: FeedAssembler, provider: AsyncMock
) -> None:
    bias = BiasCoordinate(0.0, 0.0)
    await assembler.get_feed(bias)
    await assembler.get_feed(bias, force_refresh=True)
    assert provider.fetch_articles_for_sources.await_count == 2


async def test_fallback_cards_when_sources_have_no_articles(
    assembler: FeedAssembler, provider: AsyncMock
) -> None:
    provider.fetch_articles_for_sources.return_value = [
        _article("usa-today", 0),
        _article("usa-today", 1),
        _article("associated-press", 0),
    ]

    cards = await assembler.get_feed(BiasCoordinate(0.0, 0.0))

    assert [(c.source_id, c.is_fallback) for c in cards] == [
        ("usa-today", False),
        ("associated-press", False),
        ("bbc-news", True),
    ]


async def test_upstream_error_propagates_and_nothing_is_cached(
    assembler: FeedAssembler, provider: AsyncMock, memory_cache: TieredCache
) -> None:
    provider.fetch_articles_for_sources.side_effect = UpstreamProviderError(
        "NewsAPI rate limit exceeded - please try again later", status_code=429
    )

    with pytest.raises(UpstreamProviderError):
        await assembler.get_feed(BiasCoordinate(0.5, 0.5))

    assert memory_cache.memory.size() == 0


async def test_empty_result_is_not_cached(
    assembler: FeedAssembler, provider: AsyncMock, memory_cache: TieredCache
) -> None:
    provider.fetch_articles_for_sources.return_value = []

    assert await assembler.get_feed(BiasCoordinate(0.0, 0.0)) == []
    assert memory_cache.memory.size() == 0


async def test_no_sources_selected_returns_empty(
    default_catalog, provider: AsyncMock, memory_cache: TieredCache
) -> None:
    selector = SourceSelector(default_catalog, friendly_count=0, opposing_count=0)
    assembler = FeedAssembler(selector, provider, memory_cache)

    assert await assembler.get_feed(BiasCoordinate(0.0, 0.0)) == []
    provider.fetch_articles_for_sources.assert_not_awaited()


async def test_unreadable_cache_entry_is_replaced(
    assembler: FeedAssembler, provider: AsyncMock, memory_cache: TieredCache
) -> None:
    await memory_cache.set("feed:0.000:0.000", "not json", 60)

    cards = await assembler.get_feed(BiasCoordinate(0.0, 0.0))

    assert len(cards) == 4
    provider.fetch_articles_for_sources.assert_awaited_once()
    assert load_cards(await memory_cache.get("feed:0.000:0.000")) == cards


async def test_feed_survives_durable_cache_outage(
    selector, provider: AsyncMock, mock_redis_client, redis_outage
) -> None:
    cache = TieredCache(mock_redis_client, MemoryCache(max_size=10), key_prefix="bn:")
    await cache.connect()
    assembler = FeedAssembler(selector, provider, cache)
    bias = BiasCoordinate(-0.2, 0.1)

    first = await assembler.get_feed(bias)
    assert "bn:feed:-0.200:0.100" in mock_redis_client.store

    redis_outage.fail(mock_redis_client)
    second = await assembler.get_feed(bias)

    assert second == first
    provider.fetch_articles_for_sources.assert_awaited_once()
    assert cache.connected is False
