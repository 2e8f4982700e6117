"""Shared slowapi rate-limiter singleton.

Kept in its own module so route modules can import it without importing
``main.py``.  ``main.create_app()`` attaches it to ``app.state`` and
registers the ``RateLimitExceeded`` handler.

Usage in route modules::

    from webscraper.api.limiter import limiter

    @router.post("/extract")
    @limiter.limit(scrape_rate_limit)
    async def extract(request: Request, ...):
        ...

The ``request`` parameter **must** be present in the route function
signature for slowapi to resolve the rate-limit key.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from webscraper.config.settings import get_settings

limiter: Limiter = Limiter(key_func=get_remote_address)
"""Process-wide limiter keyed by client IP address."""


def scrape_rate_limit() -> str:
    """Return the configured per-client limit for the scrape route (e.g. ``"10/minute"``)."""
    return get_settings().webscraper_rate_limit
