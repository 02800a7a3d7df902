"""NewsAPI article provider."""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlparse

import httpx
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from balanced_news.core.config import settings
from balanced_news.core.infrastructure.logging import BusinessEvents
from balanced_news.modules.feed.domain.entities import ArticleSource, ProviderArticle
from balanced_news.modules.feed.domain.exceptions import UpstreamProviderError

PROVIDER_NAME = "newsapi"
NEWSAPI_MAX_PAGE_SIZE = 100
RETRY_MAX_DELAY_SEC = 10.0
REMOVED_MARKER = "[Removed]"


def is_retryable(exc: BaseException) -> bool:
    """网络错误和 5xx 可重试；4xx（含 401 / 429）直接失败。"""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def is_valid_url(url: Any) -> bool:
    if not isinstance(url, str) or not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _parse_published_at(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def filter_articles(
    raw_articles: Any,
    max_age_days: int,
    now: datetime | None = None,
) -> list[ProviderArticle]:
    """校验并清洗上游文章，丢弃不完整、过旧或已删除的条目。"""
    if not isinstance(raw_articles, list):
        logger.warning("Invalid articles response - not a list")
        return []

    cutoff = (now or datetime.now(UTC)) - timedelta(days=max_age_days)
    valid: list[ProviderArticle] = []
    for raw in raw_articles:
        if not isinstance(raw, dict):
            continue

        title = _clean(raw.get("title"))
        url = raw.get("url")
        if not title or not is_valid_url(url):
            logger.debug(f"Article missing title or valid url: {title!r}")
            continue

        published_raw = raw.get("publishedAt")
        if published_raw is not None:
            published_at = _parse_published_at(published_raw)
            if published_at is None:
                logger.debug(f"Article has invalid publish date: {published_raw!r}")
                continue
            if max_age_days > 0 and published_at < cutoff:
                continue

        source = raw.get("source")
        source_id = _clean(source.get("id")) if isinstance(source, dict) else None
        if source_id is None:
            logger.debug(f"Article missing source information: {title!r}")
            continue

        description = _clean(raw.get("description")) or ""
        if title == REMOVED_MARKER or description == REMOVED_MARKER:
            continue

        image = raw.get("urlToImage")
        valid.append(
            ProviderArticle(
                title=title,
                url=url,
                url_to_image=image if is_valid_url(image) else None,
                published_at=published_raw,
                description=description,
                source=ArticleSource(
                    id=source_id,
                    name=_clean(source.get("name")) or source_id,
                ),
                author=_clean(raw.get("author")),
                content=_clean(raw.get("content")),
            )
        )

    logger.debug(
        f"Article validation completed: total={len(raw_articles)}, valid={len(valid)}"
    )
    return valid


class NewsApiArticleProvider:
    """通过 NewsAPI top-headlines 批量获取文章。

    - 网络错误和 5xx 重试，指数退避；401 / 429 等 4xx 不重试
    - 相邻两次请求之间至少间隔 NEWSAPI_RATE_LIMIT_DELAY_SEC
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_sec: float | None = None,
        max_retries: int | None = None,
        min_interval_sec: float | None = None,
        page_size: int | None = None,
        max_age_days: int | None = None,
        language: str | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.NEWSAPI_KEY
        self.base_url = (base_url or settings.NEWSAPI_BASE_URL).rstrip("/")
        self.max_retries = (
            max_retries if max_retries is not None else settings.NEWSAPI_MAX_RETRIES
        )
        self.min_interval_sec = (
            min_interval_sec
            if min_interval_sec is not None
            else settings.NEWSAPI_RATE_LIMIT_DELAY_SEC
        )
        self.page_size = min(
            page_size or settings.MAX_ARTICLES_PER_SOURCE, NEWSAPI_MAX_PAGE_SIZE
        )
        self.max_age_days = (
            max_age_days if max_age_days is not None else settings.ARTICLE_MAX_AGE_DAYS
        )
        self.language = language or settings.NEWSAPI_LANGUAGE
        self._client = client or httpx.AsyncClient(
            timeout=timeout_sec or settings.NEWSAPI_TIMEOUT_SEC,
            follow_redirects=False,
        )
        self._sleep = sleep
        self._clock = clock
        self._spacing_lock = asyncio.Lock()
        self._last_request_at: float | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_articles_for_sources(
        self, source_ids: Sequence[str]
    ) -> list[ProviderArticle]:
        if not self._api_key:
            raise UpstreamProviderError("NEWSAPI_KEY is not configured")

        ids = [s for s in dict.fromkeys(source_ids) if s]
        if not ids:
            logger.warning("No source IDs provided for NewsAPI request")
            return []

        started = time.perf_counter()
        params: dict[str, Any] = {
            "sources": ",".join(ids),
            "language": self.language,
            "pageSize": self.page_size,
        }
        if self.max_age_days > 0:
            since = datetime.now(UTC) - timedelta(days=self.max_age_days)
            params["from"] = since.isoformat()

        logger.info(f"Fetching articles from NewsAPI for sources: {ids}")
        payload = await self._get_with_retry(f"{self.base_url}/top-headlines", params)

        if payload.get("status") != "ok":
            message = payload.get("message") or "Unknown error"
            BusinessEvents.upstream_fetch_failed(provider=PROVIDER_NAME, error=message)
            raise UpstreamProviderError(
                f"NewsAPI returned status: {payload.get('status')} - {message}"
            )

        raw_articles = payload.get("articles")
        if not isinstance(raw_articles, list):
            logger.warning("NewsAPI response missing articles array")
            return []

        articles = filter_articles(raw_articles, self.max_age_days)
        by_source = Counter(a.source.id for a in articles)
        missing = [s for s in ids if s not in by_source]
        if missing:
            logger.warning(f"Some sources returned no articles: {missing}")

        logger.info(
            f"NewsAPI articles processed: total={len(raw_articles)}, "
            f"valid={len(articles)}, "
            f"duration={int((time.perf_counter() - started) * 1000)}ms"
        )
        return articles

    async def _get_with_retry(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=2, max=RETRY_MAX_DELAY_SEC),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            payload = await retrying(self._get, url, params)
        except (httpx.HTTPError, ValueError) as exc:
            raise self._to_upstream_error(exc) from exc

        if not isinstance(payload, dict):
            raise self._to_upstream_error(ValueError("payload must be an object"))
        return payload

    async def _get(self, url: str, params: dict[str, Any]) -> Any:
        await self._enforce_spacing()
        response = await self._client.get(
            url,
            params=params,
            headers={
                "X-Api-Key": self._api_key or "",
                "User-Agent": settings.FETCHER_USER_AGENT,
                "Accept": "application/json",
            },
        )
        response.raise_for_status()
        return response.json()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"NewsAPI request retry {retry_state.attempt_number}/{self.max_retries} "
            f"in {delay:.0f}s: {error!r}"
        )

    async def _enforce_spacing(self) -> None:
        async with self._spacing_lock:
            if self._last_request_at is not None:
                wait = self.min_interval_sec - (self._clock() - self._last_request_at)
                if wait > 0:
                    logger.debug(f"Enforcing NewsAPI rate limit, waiting {wait:.2f}s")
                    await self._sleep(wait)
            self._last_request_at = self._clock()

    @staticmethod
    def _to_upstream_error(exc: Exception) -> UpstreamProviderError:
        status_code: int | None = None
        if isinstance(exc, httpx.HTTPStatusError):
            status_code = exc.response.status_code
            if status_code == 400:
                message = _response_message(exc.response) or "Bad request parameters"
                text = f"Invalid NewsAPI request: {message}"
            elif status_code == 401:
                text = "Invalid NewsAPI key - please check your API configuration"
            elif status_code == 429:
                text = "NewsAPI rate limit exceeded - please try again later"
            elif status_code >= 500:
                text = "NewsAPI service temporarily unavailable - please try again later"
            else:
                text = f"NewsAPI error: HTTP {status_code}"
        elif isinstance(exc, httpx.TimeoutException):
            text = "NewsAPI request timeout - please try again"
        elif isinstance(exc, httpx.ConnectError):
            text = "Cannot connect to NewsAPI - please check your internet connection"
        else:
            text = f"NewsAPI error: {exc}"

        BusinessEvents.upstream_fetch_failed(
            provider=PROVIDER_NAME,
            error=text,
            status_code=status_code,
        )
        return UpstreamProviderError(text, status_code=status_code)


def _response_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None
