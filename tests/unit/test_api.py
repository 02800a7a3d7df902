"""HTTP API tests (dependencies overridden, no Redis / NewsAPI)."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.cache import MemoryCache, TieredCache
from balanced_news.modules.feed.application import dependencies as feed_app_deps
from balanced_news.modules.feed.application.feed_assembler import FeedAssembler
from balanced_news.modules.feed.application.rate_limit import FeedRateLimiter
from balanced_news.modules.feed.domain.entities import ArticleSource, ProviderArticle
from balanced_news.modules.feed.domain.exceptions import UpstreamProviderError
from balanced_news.modules.sources.application import dependencies as sources_app_deps
from balanced_news.modules.sources.application.selector import SourceSelector

API = settings.API_V1_STR


def _article(source_id: str) -> ProviderArticle:
    return ProviderArticle(
        title=f"Headline from {source_id}",
        url=f"https://{source_id}.example.com/story",
        published_at="2099-01-01T12:00:00Z",
        source=ArticleSource(id=source_id, name=source_id),
    )


@pytest.fixture
def provider() -> AsyncMock:
    provider = AsyncMock()
    provider.fetch_articles_for_sources.side_effect = lambda ids: [
        _article(source_id) for source_id in ids
    ]
    return provider


@pytest.fixture
def api(async_client, default_catalog, provider, mock_redis_client):
    """覆盖应用层依赖（在 async_client 保存原始覆盖之后），返回可调整的组件。"""
    from main import app

    selector = SourceSelector(
        default_catalog, friendly_count=2, opposing_count=2, ensure_diversity=True
    )
    assembler = FeedAssembler(
        selector, provider, TieredCache(None, MemoryCache(max_size=10))
    )
    limiter = FeedRateLimiter(mock_redis_client, window_sec=900, max_requests=100)

    app.dependency_overrides[sources_app_deps.get_source_catalog] = (
        lambda: default_catalog
    )
    app.dependency_overrides[sources_app_deps.get_source_selector] = lambda: selector
    app.dependency_overrides[feed_app_deps.get_feed_assembler] = lambda: assembler
    app.dependency_overrides[feed_app_deps.get_feed_rate_limiter] = lambda: limiter
    return {"assembler": assembler, "limiter": limiter, "redis": mock_redis_client}


@pytest.mark.anyio
class TestFeedEndpoint:
    async def test_returns_camel_case_cards(
        self, async_client: AsyncClient, api, provider: AsyncMock
    ) -> None:
        response = await async_client.get(
            f"{API}/feed", params={"x": 0, "y": 0, "client_ts": 1700000000000}
        )

        assert response.status_code == 200
        cards = response.json()
        assert [c["sourceId"] for c in cards] == [
            "usa-today",
            "associated-press",
            "bbc-news",
            "reuters",
        ]
        assert cards[0]["role"] == "friendly"
        assert cards[2]["role"] == "opposing"
        assert cards[0]["isFallback"] is False
        assert cards[0]["articleId"] == "https://usa-today.example.com/story"
        assert "imageUrl" in cards[0]

        await async_client.get(f"{API}/feed", params={"x": 0, "y": 0})
        provider.fetch_articles_for_sources.assert_awaited_once()

    async def test_refresh_bypasses_cache(
        self, async_client: AsyncClient, api, provider: AsyncMock
    ) -> None:
        await async_client.get(f"{API}/feed", params={"x": 0.5, "y": 0.5})
        await async_client.get(
            f"{API}/feed", params={"x": 0.5, "y": 0.5, "refresh": "true"}
        )
        assert provider.fetch_articles_for_sources.await_count == 2

    async def test_out_of_range_bias_is_rejected(
        self, async_client: AsyncClient, api, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "BIAS_VALIDATION_MODE", "strict")

        response = await async_client.get(f"{API}/feed", params={"x": 1.5, "y": 0})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_out_of_range_bias_is_clamped_in_permissive_mode(
        self, async_client: AsyncClient, api, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "BIAS_VALIDATION_MODE", "permissive")

        response = await async_client.get(f"{API}/feed", params={"x": 7, "y": -7})

        assert response.status_code == 200
        assert await api["assembler"]._cache.get("feed:1.000:-1.000") is not None

    async def test_missing_or_non_numeric_bias(
        self, async_client: AsyncClient, api
    ) -> None:
        assert (await async_client.get(f"{API}/feed", params={"x": 0})).status_code == 422
        response = await async_client.get(f"{API}/feed", params={"x": "abc", "y": 0})
        assert response.status_code == 422

    async def test_rate_limited_request(
        self, async_client: AsyncClient, api
    ) -> None:
        api["redis"].rate_limit_check = AsyncMock(return_value=(False, 101))

        response = await async_client.get(
            f"{API}/feed",
            params={"x": 0, "y": 0},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert api["redis"].rate_limit_check.await_args.args[1] == "203.0.113.7"

    async def test_upstream_failure_maps_to_bad_gateway(
        self, async_client: AsyncClient, api, provider: AsyncMock
    ) -> None:
        provider.fetch_articles_for_sources.side_effect = UpstreamProviderError(
            "Invalid NewsAPI key - please check your API configuration",
            status_code=401,
        )

        response = await async_client.get(f"{API}/feed", params={"x": 0, "y": 0})

        assert response.status_code == 502
        body = response.json()
        assert body["error"]["code"] == "UPSTREAM_PROVIDER_ERROR"
        assert "Invalid NewsAPI key" in body["error"]["message"]

    async def test_slow_feed_times_out(
        self, async_client: AsyncClient, api, provider: AsyncMock, monkeypatch
    ) -> None:
        async def _slow(_ids):
            await asyncio.sleep(1.0)
            return []

        provider.fetch_articles_for_sources.side_effect = _slow
        monkeypatch.setattr(settings, "FEED_REQUEST_TIMEOUT_SEC", 0.05)

        response = await async_client.get(f"{API}/feed", params={"x": 0, "y": 0})

        assert response.status_code == 504
        assert response.json()["error"]["code"] == "FEED_TIMEOUT"


@pytest.mark.anyio
class TestSourcesEndpoints:
    async def test_list_sources(self, async_client: AsyncClient, api) -> None:
        response = await async_client.get(f"{API}/sources")

        assert response.status_code == 200
        body = response.json()
        assert body["meta"] == {"count": 6, "stage": "primary"}
        assert {s["id"] for s in body["data"]} >= {"bbc-news", "usa-today"}

    async def test_stats(self, async_client: AsyncClient, api) -> None:
        response = await async_client.get(f"{API}/sources/stats")

        data = response.json()["data"]
        assert data["total"] == 6
        assert data["stage"] == "primary"
        assert data["by_category"] == {"general": 6}

    async def test_pick(self, async_client: AsyncClient, api) -> None:
        response = await async_client.get(
            f"{API}/sources/pick",
            params={"x": 0, "y": 0, "friendly_count": 1, "opposing_count": 1},
        )

        body = response.json()
        assert body["meta"]["count"] == 2
        assert [(s["id"], s["role"]) for s in body["data"]] == [
            ("usa-today", "friendly"),
            ("associated-press", "opposing"),
        ]
        assert body["data"][0]["is_emergency"] is False

    async def test_pick_rejects_large_counts(
        self, async_client: AsyncClient, api
    ) -> None:
        response = await async_client.get(
            f"{API}/sources/pick", params={"x": 0, "y": 0, "friendly_count": 50}
        )
        assert response.status_code == 422


@pytest.mark.anyio
async def test_health(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] in ("healthy", "degraded")
    assert set(body["components"]) == {"catalog", "cache", "newsapi"}
    assert body["components"]["catalog"]["active_sources"] >= 4
