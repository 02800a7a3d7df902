"""API router configuration."""

from fastapi import APIRouter

from balanced_news.modules.feed.interfaces.router import router as feed_router
from balanced_news.modules.sources.interfaces.router import router as sources_router

api_router = APIRouter()

# Feed
api_router.include_router(feed_router)

# Sources
api_router.include_router(sources_router)
