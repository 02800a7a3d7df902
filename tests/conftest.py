"""
pytest 配置和共享 fixtures。

测试分层：
- unit/: 单元测试（不依赖外部服务，Redis / NewsAPI 全部 mock）

使用方法：
    # 运行所有测试
    pytest

    # 只运行单元测试
    pytest tests/unit/
"""

import fnmatch
from collections.abc import AsyncGenerator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from balanced_news.core.infrastructure.redis import RedisClient, RedisUnavailableError
from balanced_news.modules.sources.application.catalog import SourceCatalog
from balanced_news.modules.sources.domain.bias import BiasCoordinate
from balanced_news.modules.sources.domain.catalog import LoadedCatalog
from balanced_news.modules.sources.domain.entities import Source
from balanced_news.modules.sources.domain.exceptions import CatalogError
from balanced_news.modules.sources.infrastructure.catalog_loader import BUILTIN_SOURCES


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ============================================
# 时钟 Fixtures
# ============================================


class FakeClock:
    """可手动推进的时钟。"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ============================================
# Catalog Fixtures
# ============================================


def make_source(source_id: str, x: float, y: float, **kwargs: Any) -> Source:
    return Source(
        id=source_id,
        name=kwargs.pop("name", source_id.replace("-", " ").title()),
        coordinate=BiasCoordinate(x, y),
        **kwargs,
    )


@pytest.fixture
def source_factory() -> Callable[..., Source]:
    return make_source


class StaticCatalogLoader:
    """返回固定信源列表的 loader；传入异常则在 load 时抛出。"""

    def __init__(self, sources: Sequence[Source] | Exception):
        self.sources = sources
        self.calls = 0

    def load(self) -> LoadedCatalog:
        self.calls += 1
        if isinstance(self.sources, Exception):
            raise self.sources
        return LoadedCatalog(
            sources=tuple(self.sources),
            total_records=len(self.sources),
            origin="static",
        )


@pytest.fixture
def catalog_factory() -> Callable[..., SourceCatalog]:
    def _factory(
        sources: Sequence[Source] | Exception,
        min_sources: int = 0,
    ) -> SourceCatalog:
        return SourceCatalog(
            StaticCatalogLoader(sources),
            BUILTIN_SOURCES,
            min_sources=min_sources,
        )

    return _factory


@pytest.fixture
def default_catalog(catalog_factory) -> SourceCatalog:
    """六个默认信源组成的 catalog。"""
    return catalog_factory(list(BUILTIN_SOURCES), min_sources=4)


@pytest.fixture
def broken_catalog(catalog_factory) -> SourceCatalog:
    return catalog_factory(CatalogError("file missing"), min_sources=4)


# ============================================
# Redis Fixtures
# ============================================


def _attach_store(client: MagicMock) -> dict[str, str]:
    store: dict[str, str] = {}

    async def _get(key: str) -> str | None:
        return store.get(key)

    async def _set(key: str, value: str, ex: Any = None, nx: bool = False) -> bool:
        store[key] = value
        return True

    async def _delete(*keys: str) -> int:
        return sum(1 for k in keys if store.pop(k, None) is not None)

    async def _delete_matching(pattern: str) -> int:
        matched = [k for k in store if fnmatch.fnmatchcase(k, pattern)]
        for key in matched:
            del store[key]
        return len(matched)

    client.get = AsyncMock(side_effect=_get)
    client.set = AsyncMock(side_effect=_set)
    client.delete = AsyncMock(side_effect=_delete)
    client.delete_matching = AsyncMock(side_effect=_delete_matching)
    return store


@pytest.fixture
def mock_redis_client() -> MagicMock:
    """Mock Redis 客户端，数据保存在 `client.store` 字典中。"""
    client = MagicMock(spec=RedisClient)
    client.url = "redis://:secret@localhost:6379/1"
    client.store = _attach_store(client)
    client.ping = AsyncMock(return_value=True)
    client.dbsize = AsyncMock(side_effect=lambda: len(client.store))
    client.memory_info = AsyncMock(
        return_value={"used_memory": 1024, "used_memory_peak": 2048}
    )
    client.close = AsyncMock()
    client.rate_limit_check = AsyncMock(return_value=(True, 1))

    @asynccontextmanager
    async def _available(*_args: Any, **_kwargs: Any):
        yield client

    client.ensure_available = MagicMock(side_effect=_available)
    return client


def make_redis_unavailable(client: MagicMock) -> None:
    """让 mock 客户端的所有操作都失败。"""
    error = ConnectionError("redis down")
    for name in ("get", "set", "delete", "delete_matching", "dbsize", "memory_info"):
        setattr(client, name, AsyncMock(side_effect=error))

    @asynccontextmanager
    async def _unavailable(*_args: Any, **_kwargs: Any):
        raise RedisUnavailableError("Redis ping failed: redis down")
        yield client

    client.ensure_available = MagicMock(side_effect=_unavailable)


def make_redis_available(client: MagicMock) -> None:
    client.store = _attach_store(client)

    @asynccontextmanager
    async def _available(*_args: Any, **_kwargs: Any):
        yield client

    client.ensure_available = MagicMock(side_effect=_available)


# ============================================
# HTTP Client Fixtures
# ============================================


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """异步 HTTP 客户端（用于 API 测试），测试中自行覆盖依赖。"""
    from main import app

    saved = dict(app.dependency_overrides)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
    app.dependency_overrides.update(saved)


# ============================================
# 领域对象 Fixtures
# ============================================


@pytest.fixture
def sample_article_data() -> Callable[..., dict[str, Any]]:
    """NewsAPI 原始文章数据。"""

    def _factory(source_id: str, index: int = 0, **overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source": {"id": source_id, "name": source_id.upper()},
            "author": " Jane Doe ",
            "title": f" Headline {index} from {source_id} ",
            "description": f"Summary {index}",
            "url": f"https://{source_id}.example.com/article-{index}",
            "urlToImage": f"https://{source_id}.example.com/image-{index}.jpg",
            "publishedAt": "2099-01-01T12:00:00Z",
            "content": "Body",
        }
        data.update(overrides)
        return data

    return _factory


class RedisOutage:
    """切换 mock Redis 的可用状态。"""

    fail = staticmethod(make_redis_unavailable)
    recover = staticmethod(make_redis_available)


@pytest.fixture
def redis_outage() -> RedisOutage:
    return RedisOutage()
