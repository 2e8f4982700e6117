"""Structured content extraction from raw HTML.

Parses the document with BeautifulSoup (stdlib ``html.parser`` backend) and
queries it with CSS selectors.  Extraction is a pure function of
``(html, url, limits)``: the capture timestamp and the robots.txt outcome
are attached later by the orchestrator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from webscraper.scraper.config import (
    DEFAULT_CHARSET,
    DESCRIPTION_MAX_LENGTH,
    IMAGES_MAX,
    LINKS_MAX,
    TEXT_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    UNTITLED_PAGE,
)
from webscraper.scraper.schemas import PageMetadata, ScrapingResult

logger = logging.getLogger(__name__)

#: Containers searched for body text, in priority order.
_TEXT_CONTAINERS: tuple[str, ...] = ("article", "main", "body")

_TEXT_ELEMENTS = "p, h1, h2, h3, h4, h5, h6, li"


@dataclass(frozen=True)
class ExtractionLimits:
    """Truncation and count caps applied to a :class:`ScrapingResult`."""

    title_max_length: int = TITLE_MAX_LENGTH
    description_max_length: int = DESCRIPTION_MAX_LENGTH
    text_max_length: int = TEXT_MAX_LENGTH
    links_max: int = LINKS_MAX
    images_max: int = IMAGES_MAX


# ---------------------------------------------------------------------------
# Document query helpers
# ---------------------------------------------------------------------------


def _attr(soup: BeautifulSoup, selector: str, name: str) -> str | None:
    """Return the trimmed ``name`` attribute of the first ``selector`` match.

    Empty values are reported as ``None``.
    """
    element = soup.select_one(selector)
    if element is None:
        return None
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if value is None:
        return None
    return value.strip() or None


def _text(element: Tag) -> str:
    return element.get_text().strip()


def _resolve(base_url: str, value: str) -> str | None:
    """Resolve ``value`` against ``base_url``; ``None`` if it cannot be parsed."""
    value = value.strip()
    if not value:
        return None
    try:
        resolved = urljoin(base_url, value)
        # Accessing .hostname validates bracketed IPv6 literals.
        urlparse(resolved).hostname
    except ValueError:
        return None
    return resolved


def _collect_urls(values: Iterable[str], base_url: str, cap: int) -> list[str]:
    """Resolve, de-duplicate (first occurrence wins) and cap ``values``."""
    seen: set[str] = set()
    urls: list[str] = []
    for value in values:
        if len(urls) >= cap:
            break
        resolved = _resolve(base_url, value)
        if resolved is None or resolved in seen:
            continue
        seen.add(resolved)
        urls.append(resolved)
    return urls


def _attr_values(soup: BeautifulSoup, selector: str, name: str) -> Iterable[str]:
    for element in soup.select(selector):
        value = element.get(name)
        if isinstance(value, str):
            yield value


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------


def _extract_title(soup: BeautifulSoup, max_length: int) -> str:
    element = soup.select_one("title")
    title = _text(element)[:max_length] if element is not None else ""
    return title or UNTITLED_PAGE


def _extract_description(soup: BeautifulSoup, max_length: int) -> str | None:
    for selector in ('meta[name="description"]', 'meta[property="og:description"]'):
        content = _attr(soup, selector, "content")
        if content:
            return content[:max_length]
    return None


def _extract_metadata(soup: BeautifulSoup) -> PageMetadata:
    return PageMetadata(
        author=_attr(soup, 'meta[name="author"]', "content"),
        publish_date=_attr(soup, 'meta[property="article:published_time"]', "content"),
        language=(
            _attr(soup, "html", "lang")
            or _attr(soup, 'meta[http-equiv="content-language"]', "content")
        ),
        charset=_attr(soup, "meta[charset]", "charset") or DEFAULT_CHARSET,
        og_image=_attr(soup, 'meta[property="og:image"]', "content"),
        og_title=_attr(soup, 'meta[property="og:title"]', "content"),
        og_description=_attr(soup, 'meta[property="og:description"]', "content"),
        twitter_card=_attr(soup, 'meta[name="twitter:card"]', "content"),
        canonical=_attr(soup, 'link[rel="canonical"]', "href"),
    )


def _extract_text(soup: BeautifulSoup, max_length: int) -> str:
    """Join the text of headings, paragraphs and list items in the main container.

    The container is the first ``<article>``, else the first ``<main>``, else
    ``<body>``; documents with none of these are searched whole.
    """
    container: Tag | BeautifulSoup = soup
    for name in _TEXT_CONTAINERS:
        found = soup.select_one(name)
        if found is not None:
            container = found
            break

    pieces = (_text(el) for el in container.select(_TEXT_ELEMENTS))
    return " ".join(piece for piece in pieces if piece)[:max_length]


# ---------------------------------------------------------------------------
# Public extraction function
# ---------------------------------------------------------------------------


def extract_content(
    html: str,
    url: str,
    *,
    limits: ExtractionLimits | None = None,
) -> ScrapingResult:
    """Extract title, description, metadata, text, links and images from ``html``.

    Args:
        html: Raw HTML string (may be partial or malformed).
        url: URL the document was fetched from; base for relative links.
        limits: Truncation and count caps.  Defaults to
            :class:`ExtractionLimits` with module defaults.

    Returns:
        A :class:`ScrapingResult` with ``scraped_at`` unset and
        ``robots_txt_allowed`` left at its default.
    """
    limits = limits or ExtractionLimits()
    soup = BeautifulSoup(html, "html.parser")

    result = ScrapingResult(
        url=url,
        title=_extract_title(soup, limits.title_max_length),
        description=_extract_description(soup, limits.description_max_length),
        text=_extract_text(soup, limits.text_max_length),
        metadata=_extract_metadata(soup),
        links=_collect_urls(_attr_values(soup, "a[href]", "href"), url, limits.links_max),
        images=_collect_urls(_attr_values(soup, "img[src]", "src"), url, limits.images_max),
    )
    logger.debug(
        "webscraper: extracted %d chars, %d links, %d images from %s",
        len(result.text),
        len(result.links),
        len(result.images),
        url,
    )
    return result
