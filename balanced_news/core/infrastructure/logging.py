"""Logging configuration with structlog integration.

提供两种日志记录方式：
1. loguru: 用于一般调试日志
2. structlog: 用于关键业务事件的结构化日志
"""

import sys
from typing import Any

import structlog
from loguru import logger

from balanced_news.core.config import settings


def setup_logging() -> None:
    """Configure application logging with structlog and loguru."""
    _configure_structlog()
    _configure_loguru()

    logger.info(f"Logging configured with level: {settings.LOG_LEVEL}")


def _configure_structlog() -> None:
    """配置 structlog 处理器链。"""
    if settings.ENVIRONMENT == "local":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _get_log_level_number(settings.LOG_LEVEL)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _configure_loguru() -> None:
    """配置 loguru。"""
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if settings.ENVIRONMENT != "local":
        logger.add(
            "logs/balanced_news_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="14 days",
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )


def _get_log_level_number(level: str) -> int:
    """将日志级别字符串转换为数字。"""
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)


def short_key(key: str, limit: int = 50) -> str:
    """截断缓存 key，避免日志过长。"""
    if len(key) <= limit:
        return key
    return f"{key[:limit]}..."


# ============================================================================
# 业务事件日志记录器
# ============================================================================


def get_business_logger() -> structlog.BoundLogger:
    """获取业务事件日志记录器。

    Usage:
        from balanced_news.core.infrastructure.logging import get_business_logger

        log = get_business_logger()
        log.info("feed_served", card_count=4, cache_hit=False)
    """
    return structlog.get_logger("business")


class BusinessEvents:
    """业务事件日志助手类。

    提供统一的业务事件日志记录接口，确保事件格式一致。

    Usage:
        BusinessEvents.sources_picked(x=0.1, y=-0.2, source_ids=["cnn", "bbc-news"])
        BusinessEvents.cache_backend_degraded(operation="get", error="timeout")
    """

    _log = get_business_logger()

    @classmethod
    def catalog_loaded(
        cls,
        origin: str,
        stage: str,
        source_count: int,
        **extra: Any,
    ) -> None:
        """记录 catalog 加载事件。"""
        cls._log.info(
            "catalog_loaded",
            event_type="catalog",
            origin=origin,
            stage=stage,
            source_count=source_count,
            **extra,
        )

    @classmethod
    def catalog_fallback_used(
        cls,
        reason: str,
        source_count: int,
        **extra: Any,
    ) -> None:
        """记录使用内置 catalog 的降级事件。"""
        cls._log.warning(
            "catalog_fallback_used",
            event_type="catalog",
            reason=reason,
            source_count=source_count,
            **extra,
        )

    @classmethod
    def sources_picked(
        cls,
        x: float,
        y: float,
        source_ids: list[str],
        role_counts: dict[str, int],
        duration_ms: int,
        **extra: Any,
    ) -> None:
        """记录信源选择事件。"""
        cls._log.info(
            "sources_picked",
            event_type="selection",
            x=round(x, settings.BIAS_COORDINATE_PRECISION),
            y=round(y, settings.BIAS_COORDINATE_PRECISION),
            source_ids=source_ids,
            role_counts=role_counts,
            duration_ms=duration_ms,
            **extra,
        )

    @classmethod
    def selection_fallback_used(
        cls,
        reason: str,
        source_ids: list[str],
        **extra: Any,
    ) -> None:
        """记录紧急兜底信源列表事件。"""
        cls._log.warning(
            "selection_fallback_used",
            event_type="selection",
            reason=reason,
            source_ids=source_ids,
            **extra,
        )

    @classmethod
    def feed_served(
        cls,
        cache_key: str,
        card_count: int,
        cache_hit: bool,
        fallback_cards: int = 0,
        **extra: Any,
    ) -> None:
        """记录 feed 返回事件。"""
        cls._log.info(
            "feed_served",
            event_type="feed",
            cache_key=cache_key,
            card_count=card_count,
            cache_hit=cache_hit,
            fallback_cards=fallback_cards,
            **extra,
        )

    @classmethod
    def cache_backend_degraded(
        cls,
        operation: str,
        error: str,
        **extra: Any,
    ) -> None:
        """记录持久层缓存不可用事件。"""
        cls._log.warning(
            "cache_backend_degraded",
            event_type="cache",
            operation=operation,
            error=error,
            **extra,
        )

    @classmethod
    def cache_backend_recovered(
        cls,
        attempts: int,
        **extra: Any,
    ) -> None:
        """记录持久层缓存恢复事件。"""
        cls._log.info(
            "cache_backend_recovered",
            event_type="cache",
            attempts=attempts,
            **extra,
        )

    @classmethod
    def upstream_fetch_failed(
        cls,
        provider: str,
        error: str,
        status_code: int | None = None,
        **extra: Any,
    ) -> None:
        """记录上游文章源抓取失败事件。"""
        cls._log.warning(
            "upstream_fetch_failed",
            event_type="upstream_error",
            provider=provider,
            error=error,
            status_code=status_code,
            **extra,
        )

    @classmethod
    def feature_degraded(
        cls,
        feature: str,
        reason: str,
        **extra: Any,
    ) -> None:
        """记录功能降级事件。"""
        cls._log.warning(
            "feature_degraded",
            event_type="degradation",
            feature=feature,
            reason=reason,
            **extra,
        )
