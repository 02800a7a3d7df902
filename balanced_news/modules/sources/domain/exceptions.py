"""Source domain exceptions."""

from balanced_news.core.domain.exceptions import DomainException


class CatalogError(DomainException):
    """Raised when catalog data is missing or malformed."""

    error_code = "CATALOG_ERROR"

    def __init__(self, message: str):
        super().__init__(f"Invalid source catalog: {message}")


class InsufficientSourcesError(CatalogError):
    """Raised when fewer than the required number of active sources remain."""

    def __init__(self, found: int, required: int):
        self.found = found
        self.required = required
        super().__init__(
            f"only {found} valid active sources, at least {required} required"
        )


class SelectionError(DomainException):
    """Raised on an unexpected fault while picking sources."""

    error_code = "SELECTION_ERROR"
