"""Bounded async HTTP fetcher for the target HTML document.

Uses ``httpx`` streaming so that the size budget is enforced while the body
is being read rather than after it has been buffered in full.  The whole
exchange (connect, headers, body) runs under one deadline; exceeding it
raises :class:`~webscraper.core.exceptions.FetchTimeoutError`, every other
failure raises :class:`~webscraper.core.exceptions.FetchError`.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from webscraper.core.exceptions import FetchError, FetchTimeoutError
from webscraper.scraper.config import (
    ACCEPT_HEADER,
    ACCEPT_LANGUAGE_HEADER,
    DEFAULT_TIMEOUT,
    HTML_CONTENT_TYPES,
    MAX_SIZE_BYTES,
    USER_AGENT,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------


def _is_html_content_type(content_type: str) -> bool:
    """Return ``True`` if the Content-Type denotes an HTML or XHTML document."""
    ct = content_type.lower()
    return any(fragment in ct for fragment in HTML_CONTENT_TYPES)


def _declared_length(response: httpx.Response) -> int:
    """Return the ``Content-Length`` header as an int, or ``0`` if absent or malformed."""
    try:
        return int(response.headers.get("content-length", "0"))
    except ValueError:
        return 0


def _decode(body: bytes, encoding: str | None) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


async def _read_document(
    url: str,
    *,
    client: httpx.AsyncClient,
    user_agent: str,
    timeout: float,
    max_size_bytes: int,
) -> str:
    headers = {
        "User-Agent": user_agent,
        "Accept": ACCEPT_HEADER,
        "Accept-Language": ACCEPT_LANGUAGE_HEADER,
    }
    async with client.stream(
        "GET",
        url,
        headers=headers,
        timeout=timeout,
        follow_redirects=True,
    ) as response:
        if not response.is_success:
            raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}")

        if not _is_html_content_type(response.headers.get("content-type", "")):
            raise FetchError("Content-Type is not HTML")

        if _declared_length(response) > max_size_bytes:
            raise FetchError("Content too large")

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > max_size_bytes:
                raise FetchError("Content exceeds size limit")

        html = _decode(bytes(body), response.encoding)

    # Header values lie; check what was actually received.
    if len(html) > max_size_bytes:
        raise FetchError("Content exceeds size limit")
    return html


async def fetch_html(
    url: str,
    *,
    client: httpx.AsyncClient,
    user_agent: str = USER_AGENT,
    timeout: float = DEFAULT_TIMEOUT,
    max_size_bytes: int = MAX_SIZE_BYTES,
) -> str:
    """Fetch ``url`` and return its decoded HTML body.

    Performs the following checks in order:

    1. **Status** — any non-2xx status raises ``FetchError("HTTP 404: Not Found")``.
    2. **Content-Type** — must contain ``text/html`` or ``application/xhtml``.
    3. **Content-Length** — a declared length above ``max_size_bytes`` is
       rejected before the body is read.
    4. **Body size** — the streamed body and the decoded text are both held
       to ``max_size_bytes``.

    Args:
        url: Validated, robots-approved target URL.
        client: Shared :class:`httpx.AsyncClient` instance.
        user_agent: ``User-Agent`` header value.
        timeout: Overall deadline in seconds for the whole exchange.
        max_size_bytes: Maximum accepted body size.

    Returns:
        The document as text.

    Raises:
        FetchTimeoutError: The deadline elapsed.
        FetchError: Any other network, URL, status, content-type or size failure.
    """
    try:
        return await asyncio.wait_for(
            _read_document(
                url,
                client=client,
                user_agent=user_agent,
                timeout=timeout,
                max_size_bytes=max_size_bytes,
            ),
            timeout=timeout,
        )
    except (TimeoutError, httpx.TimeoutException) as exc:
        logger.warning("webscraper: timeout fetching %s", url)
        raise FetchTimeoutError() from exc
    except httpx.TooManyRedirects as exc:
        raise FetchError("too many redirects") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("webscraper: request error for %s: %s", url, exc)
        raise FetchError(f"request error: {exc}") from exc
