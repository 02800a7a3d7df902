"""Feed domain exceptions."""

from fastapi import status

from balanced_news.core.domain.exceptions import DomainException


class UpstreamProviderError(DomainException):
    """Raised when the article provider fails."""

    http_status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_PROVIDER_ERROR"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class FeedTimeoutError(DomainException):
    """Raised when assembling a feed takes longer than allowed."""

    http_status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error_code = "FEED_TIMEOUT"

    def __init__(self, timeout_sec: float):
        self.timeout_sec = timeout_sec
        super().__init__(f"Feed request timed out after {timeout_sec:g} seconds")
