"""Feed API routes."""

import asyncio

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger

from balanced_news.core.config import settings
from balanced_news.modules.feed.application.dependencies import (
    get_feed_assembler,
    get_feed_rate_limiter,
)
from balanced_news.modules.feed.application.feed_assembler import FeedAssembler
from balanced_news.modules.feed.application.rate_limit import FeedRateLimiter
from balanced_news.modules.feed.domain.entities import FeedCard
from balanced_news.modules.feed.domain.exceptions import FeedTimeoutError
from balanced_news.modules.sources.domain.bias import BiasCoordinate
from balanced_news.modules.sources.interfaces.schemas import get_bias_coordinate

router = APIRouter(tags=["feed"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.get(
    "/feed",
    response_model=list[FeedCard],
    summary="获取平衡 feed",
    description="按偏好坐标返回 friendly / opposing 信源的文章卡片（camelCase 字段）",
)
async def get_feed(
    request: Request,
    bias: BiasCoordinate = Depends(get_bias_coordinate),
    client_ts: int | None = Query(None, ge=0, description="客户端时间戳（毫秒）"),
    refresh: bool = Query(False, description="跳过缓存"),
    assembler: FeedAssembler = Depends(get_feed_assembler),
    rate_limiter: FeedRateLimiter = Depends(get_feed_rate_limiter),
) -> list[FeedCard]:
    await rate_limiter.check(_client_ip(request))

    logger.info(
        f"Feed request x={bias.x} y={bias.y} client_ts={client_ts} refresh={refresh}"
    )
    try:
        return await asyncio.wait_for(
            assembler.get_feed(bias, force_refresh=refresh),
            timeout=settings.FEED_REQUEST_TIMEOUT_SEC,
        )
    except TimeoutError as e:
        raise FeedTimeoutError(settings.FEED_REQUEST_TIMEOUT_SEC) from e
