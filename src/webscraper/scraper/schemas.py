"""Pydantic request/response schemas for the scrape operation.

Field names are snake_case in Python and serialised with camelCase aliases
(``scrapedAt``, ``robotsTxtAllowed``, ``resetAt`` ...) so the JSON returned
by the HTTP route matches what browser clients consume.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapeInput(_CamelModel):
    """Payload for a single scrape request."""

    url: str = Field(min_length=1)


class PageMetadata(_CamelModel):
    """Best-effort document metadata.  Every field except ``charset`` is optional."""

    author: Optional[str] = None
    publish_date: Optional[str] = None
    language: Optional[str] = None
    charset: str = "UTF-8"
    og_image: Optional[str] = None
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    twitter_card: Optional[str] = None
    canonical: Optional[str] = None


class ScrapingResult(_CamelModel):
    """Structured content extracted from one HTML document.

    Attributes:
        url: The URL the caller asked for.
        title: ``<title>`` text, truncated; ``"Untitled Page"`` if absent.
        description: Meta / OpenGraph description, truncated.
        text: Space-joined text of headings, paragraphs and list items.
        metadata: See :class:`PageMetadata`.
        links: Absolute, de-duplicated anchor targets (capped).
        images: Absolute, de-duplicated image sources (capped).
        scraped_at: Capture timestamp, set by the orchestrator.
        robots_txt_allowed: Outcome of the robots.txt check.
    """

    url: str
    title: str
    description: Optional[str] = None
    text: str
    metadata: PageMetadata
    links: List[str]
    images: List[str]
    scraped_at: Optional[datetime] = None
    robots_txt_allowed: bool = True


class UsageInfo(_CamelModel):
    """Quota snapshot for one owner.

    ``reset_at`` is ``None`` until the owner's first successful scrape opens
    a window.
    """

    used: int = Field(ge=0)
    limit: int = Field(ge=0)
    reset_at: Optional[datetime] = None


class ScrapeResponse(_CamelModel):
    """Return value of :meth:`~webscraper.scraper.service.WebscraperService.scrape`."""

    result: ScrapingResult
    usage: UsageInfo
