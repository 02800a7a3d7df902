"""Balanced News Backend - 平衡新闻 feed 服务入口。"""

from datetime import UTC, datetime

import sentry_sdk
from fastapi import FastAPI, Query
from fastapi.concurrency import asynccontextmanager
from fastapi.routing import APIRoute
from loguru import logger
from starlette.middleware.cors import CORSMiddleware

from balanced_news.core.config import settings
from balanced_news.core.domain.exceptions import DomainException
from balanced_news.core.infrastructure.cache import tiered_cache
from balanced_news.core.infrastructure.health import HealthStatus
from balanced_news.core.infrastructure.logging import setup_logging
from balanced_news.core.infrastructure.redis import mask_redis_url, redis_client
from balanced_news.core.infrastructure.scheduler import BackgroundScheduler
from balanced_news.core.interfaces.http.exceptions import (
    domain_exception_handler,
    global_exception_handler,
)
from balanced_news.core.interfaces.http.routers import api_router
from balanced_news.modules.feed.application import dependencies as feed_app_deps
from balanced_news.modules.feed.infrastructure import dependencies as feed_infra_deps
from balanced_news.modules.sources.application import dependencies as sources_app_deps
from balanced_news.modules.sources.infrastructure import (
    dependencies as sources_infra_deps,
)

VERSION = "1.0.0"


def custom_generate_unique_id(route: APIRoute) -> str:
    """Generate unique operation IDs for OpenAPI."""
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


# Initialize Sentry if configured
if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(
        dsn=str(settings.SENTRY_DSN),
        enable_tracing=True,
        environment=settings.ENVIRONMENT,
    )


def build_scheduler() -> BackgroundScheduler:
    """注册所有后台任务：缓存过期清理、Redis 重连、catalog 文件监听。"""
    scheduler = BackgroundScheduler()
    scheduler.add_periodic(
        "cache-sweep",
        settings.CACHE_SWEEP_INTERVAL_SEC,
        tiered_cache.sweep_expired,
    )
    scheduler.add_task("durable-reconnect", tiered_cache.run_reconnect_loop)
    if settings.sources_watch_enabled:
        scheduler.add_periodic(
            "catalog-watch",
            settings.SOURCES_WATCH_INTERVAL_SEC,
            sources_infra_deps.build_catalog_watcher().check,
        )
    return scheduler


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting balanced-news backend...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    sources_infra_deps.source_catalog.reload()

    if settings.REDIS_ENABLED:
        logger.info(f"Connecting to Redis at {mask_redis_url(settings.REDIS_URL)}...")
    await tiered_cache.connect()

    if not feed_infra_deps.article_provider.configured:
        logger.warning("NEWSAPI_KEY is not configured, /feed will fail on cache miss")

    scheduler = build_scheduler()
    scheduler.start()

    yield

    logger.info("Shutting down balanced-news backend...")
    await scheduler.stop()
    await feed_infra_deps.article_provider.aclose()
    await tiered_cache.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description=(
        "平衡新闻 feed 服务 - 按用户政治偏好坐标挑选 friendly / opposing 信源，"
        "聚合文章并分级缓存"
    ),
    version=VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    root_path=settings.ROOTPATH,
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)

# Dependency overrides (application -> infrastructure)
app.dependency_overrides[sources_app_deps.get_source_catalog] = (
    sources_infra_deps.get_source_catalog
)
app.dependency_overrides[sources_app_deps.get_source_selector] = (
    sources_infra_deps.get_source_selector
)

app.dependency_overrides[feed_app_deps.get_feed_assembler] = (
    feed_infra_deps.get_feed_assembler
)
app.dependency_overrides[feed_app_deps.get_feed_rate_limiter] = (
    feed_infra_deps.get_feed_rate_limiter
)

# Exception handlers
app.add_exception_handler(DomainException, domain_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# CORS middleware
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health", tags=["health"])
async def health_check(
    extended: bool = Query(False, description="附带缓存自检与统计"),
):
    """Health check endpoint.

    - catalog: 启用信源数是否达到下限，是否在使用内置 catalog
    - cache: Redis 是否连接（extended 时做一次读写删除自检）
    - redis: extended 时附带 Redis 版本与连接状态
    - newsapi: 是否配置了 API key

    Returns:
        healthy: 所有组件正常；degraded: 可降级运行
    """
    catalog_health = sources_infra_deps.source_catalog.health()
    provider_configured = feed_infra_deps.article_provider.configured
    cache_ok = tiered_cache.connected or not tiered_cache.redis_configured

    components: dict = {
        "catalog": catalog_health.to_dict(),
        "cache": {
            "redis_configured": tiered_cache.redis_configured,
            "redis_connected": tiered_cache.connected,
            "memory_size": tiered_cache.memory.size(),
        },
        "newsapi": {"configured": provider_configured},
    }

    if extended:
        cache_health = await tiered_cache.health_check()
        components["cache"] = cache_health.to_dict()
        components["cache_stats"] = await tiered_cache.stats()
        components["redis"] = (
            (await redis_client.health_check()).to_dict()
            if settings.REDIS_ENABLED
            else {"status": HealthStatus.SKIPPED.value}
        )
        cache_ok = cache_ok and cache_health.status == HealthStatus.OK

    all_ok = (
        catalog_health.status == HealthStatus.OK and cache_ok and provider_configured
    )

    return {
        "status": "healthy" if all_ok else "degraded",
        "environment": settings.ENVIRONMENT,
        "version": VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "components": components,
    }


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to Balanced News API",
        "docs": f"{settings.API_V1_STR}/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.SERVER_PORT,
        reload=settings.ENVIRONMENT == "local",
    )
