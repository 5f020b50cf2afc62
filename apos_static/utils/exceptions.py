"""Custom exceptions for the static export pipeline."""


class AposStaticError(Exception):
    """Base exception for all apos-static errors."""

    pass


class ConfigurationError(AposStaticError):
    """Exception raised when required configuration is missing or invalid."""

    pass


class ContentApiError(AposStaticError):
    """Exception raised when the content API cannot list pages."""

    pass


class EmptySitemapError(AposStaticError):
    """Exception raised when discovery produced no URLs to render."""

    pass


class PreviewServerError(AposStaticError):
    """Base exception for preview server lifecycle failures."""

    pass


class PreviewBuildError(PreviewServerError):
    """Exception raised when the frontend build step exits non-zero."""

    pass


class PreviewServerTimeoutError(PreviewServerError):
    """Exception raised when the preview server never becomes ready."""

    pass


class PageFetchError(AposStaticError):
    """Exception raised when a page cannot be fetched from the preview server."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryablePageError(PageFetchError):
    """Exception raised for transient page failures (5xx, 429)."""

    pass
