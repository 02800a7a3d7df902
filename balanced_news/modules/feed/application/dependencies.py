"""Feed module application dependencies."""

from typing import NoReturn

from balanced_news.modules.feed.application.feed_assembler import FeedAssembler
from balanced_news.modules.feed.application.rate_limit import FeedRateLimiter


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_feed_assembler() -> FeedAssembler:
    _missing_dependency("FeedAssembler")


async def get_feed_rate_limiter() -> FeedRateLimiter:
    _missing_dependency("FeedRateLimiter")
