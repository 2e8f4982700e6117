"""Application-wide exception hierarchy for the webscraper service.

Every error raised by :meth:`~webscraper.scraper.service.WebscraperService.scrape`
subclasses ``WebscraperError`` and carries a stable ``code`` so that the
HTTP-facing caller can map it to a transport status without string matching.

Hierarchy::

    WebscraperError                 (code: str)
    ├── FeatureDisabledError        feature_disabled
    ├── ValidationError             validation_error
    ├── QuotaExceededError          quota_exceeded  (usage: UsageInfo)
    ├── RobotsTxtBlockedError       robots_txt_blocked
    ├── ScrapeFetchError            fetch_error
    └── ParseError                  parse_error

    FetchError                      raised by the bounded fetcher
    └── FetchTimeoutError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webscraper.scraper.schemas import UsageInfo


class WebscraperError(Exception):
    """Base class for all typed scrape failures.

    Args:
        message: Human-readable description of the failure.
    """

    code: str = "server_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FeatureDisabledError(WebscraperError):
    """Raised when the scraper is switched off via configuration."""

    code = "feature_disabled"

    def __init__(self, message: str = "feature_not_enabled") -> None:
        super().__init__(message)


class ValidationError(WebscraperError):
    """Raised when the input URL is malformed or not permitted."""

    code = "validation_error"


class QuotaExceededError(WebscraperError):
    """Raised when the owner's daily budget is exhausted.

    Args:
        usage: Usage snapshot at the time of the check.
    """

    code = "quota_exceeded"

    def __init__(self, usage: UsageInfo) -> None:
        super().__init__(f"Quota exceeded. Used {usage.used}/{usage.limit}")
        self.usage = usage


class RobotsTxtBlockedError(WebscraperError):
    """Raised when robots.txt explicitly disallows the target path."""

    code = "robots_txt_blocked"

    def __init__(self, message: str = "robots.txt disallows scraping this URL") -> None:
        super().__init__(message)


class ScrapeFetchError(WebscraperError):
    """Raised when the target document could not be fetched."""

    code = "fetch_error"


class ParseError(WebscraperError):
    """Raised when content extraction fails unexpectedly."""

    code = "parse_error"


# ---------------------------------------------------------------------------
# Fetcher-level exceptions
# ---------------------------------------------------------------------------


class FetchError(Exception):
    """Raised by :func:`~webscraper.scraper.http_fetcher.fetch_html` on any
    network, status, content-type or size failure."""


class FetchTimeoutError(FetchError):
    """Raised when the overall fetch deadline elapses."""

    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(message)
