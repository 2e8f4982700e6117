"""Constants and default tuning parameters for the webscraper service.

Runtime values are read from :class:`webscraper.config.settings.Settings`;
the constants below are the defaults those settings fall back to.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fetch timing
# ---------------------------------------------------------------------------

#: Overall timeout (seconds) for fetching the target document.
DEFAULT_TIMEOUT: float = 10.0

#: Timeout (seconds) for fetching ``/robots.txt``.
ROBOTS_TIMEOUT: float = 5.0

# ---------------------------------------------------------------------------
# Size guards
# ---------------------------------------------------------------------------

#: Maximum accepted response body size in bytes (5 MB).
MAX_SIZE_BYTES: int = 5 * 1024 * 1024

#: Maximum accepted length of the input URL.
MAX_URL_LENGTH: int = 2048

# ---------------------------------------------------------------------------
# Extraction caps
# ---------------------------------------------------------------------------

TITLE_MAX_LENGTH: int = 200
DESCRIPTION_MAX_LENGTH: int = 500
TEXT_MAX_LENGTH: int = 50_000
LINKS_MAX: int = 100
IMAGES_MAX: int = 50

#: Title used when a document has no (non-empty) ``<title>``.
UNTITLED_PAGE: str = "Untitled Page"

#: Charset reported when the document does not declare one.
DEFAULT_CHARSET: str = "UTF-8"

# ---------------------------------------------------------------------------
# URL policy
# ---------------------------------------------------------------------------

ALLOWED_SCHEMES: tuple[str, ...] = ("http", "https")

#: Hostname substrings that are never fetched (loopback, link-local and
#: cloud metadata endpoints).
BLOCKED_DOMAINS: tuple[str, ...] = (
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "169.254.169.254",
    "metadata.google.internal",
)

#: Explicit ports accepted in target URLs; a URL without a port always passes.
ALLOWED_PORTS: tuple[int, ...] = (80, 443)

#: Domains served by this deployment itself.  Empty by default.
OWN_DOMAINS: tuple[str, ...] = ()

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: User-agent string sent with every HTTP request.
USER_AGENT: str = "Mozilla/5.0 (compatible; WebscraperBot/1.0; +https://example.org/bot)"

ACCEPT_HEADER: str = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_LANGUAGE_HEADER: str = "en-US,en;q=0.9,de;q=0.8"

#: Content-Type fragments accepted as HTML documents.
HTML_CONTENT_TYPES: tuple[str, ...] = ("text/html", "application/xhtml")

# ---------------------------------------------------------------------------
# robots.txt
# ---------------------------------------------------------------------------

#: robots.txt user-agent token matched before falling back to ``*``.
ROBOTS_USER_AGENT: str = "webscraper-bot"

ROBOTS_USER_AGENT_FALLBACK: str = "*"

#: Bytes of robots.txt that are read and parsed; the rest is ignored.
ROBOTS_MAX_BYTES: int = 500 * 1024

# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------

DEFAULT_GUEST_LIMIT: int = 5
DEFAULT_USER_LIMIT: int = 20

#: Key prefix for quota records in the key-value store.
KV_NAMESPACE: str = "webscraper"

#: Length of a quota window in seconds (24 hours).
QUOTA_WINDOW_SECONDS: int = 24 * 60 * 60
