"""Application configuration."""

from pathlib import Path
from typing import Annotated, Any, Literal, Self

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

RESOURCES_DIR = Path(__file__).resolve().parents[1] / "resources"


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "balanced-news"
    SERVER_PORT: int = 3001
    ROOTPATH: str = ""
    API_V1_STR: str = ""
    FRONTEND_HOST: str = "http://localhost:8081"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    CORS_ALLOW_METHODS: list[str] = ["GET", "POST", "OPTIONS"]
    CORS_ALLOW_HEADERS: list[str] = [
        "Content-Type",
        "Authorization",
        "X-Requested-With",
    ]

    # Sentry
    SENTRY_DSN: HttpUrl | None = None

    # Redis（持久层缓存）
    REDIS_ENABLED: bool = True
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_RECONNECT_BASE_DELAY_SEC: float = 1.0
    REDIS_RECONNECT_MAX_DELAY_SEC: float = 10.0
    REDIS_MAX_RECONNECT_ATTEMPTS: int = 10

    # Cache
    CACHE_KEY_PREFIX: str = "bn:"
    MEMORY_CACHE_MAX_SIZE: int = 1000
    CACHE_OPERATION_TIMEOUT_SEC: float = 2.0
    CACHE_SWEEP_INTERVAL_SEC: int = 300  # 5 minutes
    CACHE_TTL_FEED: int = 1800  # 30 minutes

    # Source catalog
    SOURCES_FILE: Path = RESOURCES_DIR / "sources" / "sources.json"
    MIN_SOURCES_COUNT: int = 4
    SOURCES_WATCH_ENABLED: bool | None = None  # 默认仅 local 环境开启
    SOURCES_WATCH_INTERVAL_SEC: int = 5

    # Source selection
    MAX_SEARCH_RADIUS: float = 2.0
    BIAS_COORDINATE_PRECISION: int = 3
    BIAS_VALIDATION_MODE: Literal["strict", "permissive"] = "strict"
    SELECTION_FRIENDLY_COUNT: int = 2
    SELECTION_OPPOSING_COUNT: int = 2
    SELECTION_ENSURE_DIVERSITY: bool = True

    # NewsAPI
    NEWSAPI_KEY: str | None = None
    NEWSAPI_BASE_URL: str = "https://newsapi.org/v2"
    NEWSAPI_TIMEOUT_SEC: float = 10.0
    NEWSAPI_MAX_RETRIES: int = 3
    NEWSAPI_RATE_LIMIT_DELAY_SEC: float = 1.0
    NEWSAPI_LANGUAGE: str = "en"
    MAX_ARTICLES_PER_SOURCE: int = 25
    ARTICLE_MAX_AGE_DAYS: int = 7
    FETCHER_USER_AGENT: str = "BalancedNews/1.0 (+https://balancednews.com)"

    # Feed endpoint
    FEED_REQUEST_TIMEOUT_SEC: float = 30.0
    FEED_RATE_LIMIT_WINDOW_SEC: int = 900  # 15 minutes
    FEED_RATE_LIMIT_MAX_REQUESTS: int | None = None

    @computed_field
    @property
    def sources_watch_enabled(self) -> bool:
        """是否轮询 catalog 文件变更，未显式配置时仅 local 开启。"""
        if self.SOURCES_WATCH_ENABLED is None:
            return self.ENVIRONMENT == "local"
        return self.SOURCES_WATCH_ENABLED

    @computed_field
    @property
    def feed_rate_limit_max_requests(self) -> int:
        if self.FEED_RATE_LIMIT_MAX_REQUESTS is not None:
            return self.FEED_RATE_LIMIT_MAX_REQUESTS
        return 1000 if self.ENVIRONMENT == "local" else 100

    @model_validator(mode="after")
    def _check_selection_counts(self) -> Self:
        if self.SELECTION_FRIENDLY_COUNT < 0 or self.SELECTION_OPPOSING_COUNT < 0:
            raise ValueError("Selection counts must be non-negative")
        if self.MEMORY_CACHE_MAX_SIZE < 1:
            raise ValueError("MEMORY_CACHE_MAX_SIZE must be at least 1")
        return self


settings = Settings()
