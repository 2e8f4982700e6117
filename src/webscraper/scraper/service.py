"""Scrape orchestrator: validate → quota → robots.txt → fetch → parse → count.

:class:`WebscraperService` is constructed explicitly with its collaborators
(settings, quota store, HTTP client, logger) and holds no state between
calls beyond them.  Each :meth:`~WebscraperService.scrape` call is a single
sequential pipeline; any step failing raises the matching
:class:`~webscraper.core.exceptions.WebscraperError` subclass immediately.
Nothing is retried here.

Typical usage::

    settings = get_settings()
    store = RedisKeyValueStore(aioredis.from_url(settings.redis_url))
    async with httpx.AsyncClient() as client:
        service = WebscraperService(settings, store=store, client=client)
        response = await service.scrape(ScrapeInput(url=url), "guest", guest_id)
"""

from __future__ import annotations

import secrets
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncIterator

import httpx
import structlog

from webscraper.config.settings import OwnerType, Settings
from webscraper.core.exceptions import (
    FeatureDisabledError,
    FetchError,
    ParseError,
    QuotaExceededError,
    RobotsTxtBlockedError,
    ScrapeFetchError,
    ValidationError,
    WebscraperError,
)
from webscraper.scraper.content_extractor import extract_content
from webscraper.scraper.http_fetcher import fetch_html
from webscraper.scraper.quota import KeyValueStore, QuotaLedger
from webscraper.scraper.robots import RobotsDecision, check_robots_txt
from webscraper.scraper.schemas import (
    ScrapeInput,
    ScrapeResponse,
    ScrapingResult,
    UsageInfo,
)
from webscraper.scraper.url_validator import validate_url


def _request_id() -> str:
    return f"scrape-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class WebscraperService:
    """Single-URL content extraction with robots.txt compliance and quotas.

    Args:
        settings: Feature flag, limits and extraction caps.
        store: Key-value store for quota records; ``None`` disables quota
            persistence (reads report zero usage).
        client: Shared HTTP client.  When omitted a client is opened and
            closed around each :meth:`scrape` call.
        logger: Structured logger; defaults to this module's structlog logger.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: KeyValueStore | None = None,
        client: httpx.AsyncClient | None = None,
        logger: Any = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._log = logger if logger is not None else structlog.get_logger(__name__)
        self.ledger = QuotaLedger(store, namespace=settings.webscraper_kv_namespace)

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient() as client:
            yield client

    def _fail(self, error: WebscraperError, **fields: Any) -> WebscraperError:
        self._log.error("scrape_failed", error_kind=error.code, error=error.message, **fields)
        return error

    def _resolve_limit(self, owner_type: OwnerType, limit: int | None) -> int:
        if limit is None:
            return self._settings.limit_for(owner_type)
        return max(limit, 0)

    async def get_usage(
        self,
        owner_type: OwnerType,
        owner_id: str,
        limit: int | None = None,
    ) -> UsageInfo:
        """Return the owner's current usage without consuming quota.

        Store failures are reported as zero usage, as in :meth:`scrape`.
        """
        limit = self._resolve_limit(owner_type, limit)
        current = await self.ledger.read(owner_type, owner_id, limit)
        return current.usage

    async def _check_robots(self, url: str, client: httpx.AsyncClient) -> RobotsDecision:
        if not self._settings.webscraper_respect_robots_txt:
            return RobotsDecision(allowed=True, fallback_reason="disabled")
        return await check_robots_txt(
            url,
            client=client,
            user_agent=self._settings.webscraper_user_agent,
            robots_agent=self._settings.webscraper_robots_agent,
            timeout=self._settings.webscraper_robots_timeout_seconds,
            max_bytes=self._settings.webscraper_robots_max_bytes,
        )

    async def scrape(
        self,
        scrape_input: ScrapeInput,
        owner_type: OwnerType,
        owner_id: str,
        limit: int | None = None,
    ) -> ScrapeResponse:
        """Fetch ``scrape_input.url`` and return its extracted content plus quota usage.

        Args:
            scrape_input: The URL to scrape.
            owner_type: ``"user"`` or ``"guest"``.
            owner_id: Opaque owner identifier used as a quota key component.
            limit: Daily budget for this call, e.g. from the owner's plan.
                Defaults to the configured limit for ``owner_type``.

        Returns:
            :class:`ScrapeResponse` with the fresh result and post-increment usage.

        Raises:
            FeatureDisabledError: The scraper is switched off.
            ValidationError: The URL is malformed or too long, or its
                scheme, port or host is not allowed.
            QuotaExceededError: The owner's daily budget is used up.
            RobotsTxtBlockedError: robots.txt disallows the path.
            ScrapeFetchError: The document could not be fetched.
            ParseError: Extraction failed.
        """
        settings = self._settings
        url = scrape_input.url

        if not settings.webscraper_enabled:
            self._log.warning("scrape_blocked_by_flag", owner_type=owner_type, owner_id=owner_id)
            raise FeatureDisabledError()

        started = time.perf_counter()
        req_id = _request_id()
        limit = self._resolve_limit(owner_type, limit)
        self._log.info(
            "scrape_requested", req_id=req_id, url=url, owner_type=owner_type, owner_id=owner_id
        )

        # 1. validating
        validation = validate_url(
            url,
            max_length=settings.webscraper_max_url_length,
            allowed_schemes=settings.webscraper_allowed_schemes,
            blocked_domains=settings.webscraper_blocked_domains,
            allowed_ports=settings.webscraper_allowed_ports,
            own_domains=settings.webscraper_own_domains,
        )
        if not validation.valid:
            raise self._fail(ValidationError(validation.reason), req_id=req_id, url=url)

        # 2. quota_checking
        current = await self.ledger.read(owner_type, owner_id, limit)
        if current.usage.used >= current.usage.limit:
            raise self._fail(
                QuotaExceededError(current.usage),
                req_id=req_id,
                url=url,
                owner_type=owner_type,
                owner_id=owner_id,
            )

        async with self._http_client() as client:
            # 3. robots_checking
            robots = await self._check_robots(url, client)
            if not robots.allowed:
                raise self._fail(RobotsTxtBlockedError(), req_id=req_id, url=url)

            # 4. fetching
            try:
                html = await fetch_html(
                    url,
                    client=client,
                    user_agent=settings.webscraper_user_agent,
                    timeout=settings.webscraper_timeout_seconds,
                    max_size_bytes=settings.webscraper_max_size_bytes,
                )
            except FetchError as exc:
                raise self._fail(
                    ScrapeFetchError(f"Fetch failed: {exc}"), req_id=req_id, url=url
                ) from exc

        # 5. parsing
        try:
            result: ScrapingResult = extract_content(
                html, url, limits=settings.extraction_limits()
            ).model_copy(
                update={
                    "scraped_at": datetime.now(UTC),
                    "robots_txt_allowed": robots.allowed,
                }
            )
        except Exception as exc:  # noqa: BLE001
            raise self._fail(ParseError(f"Parse failed: {exc}"), req_id=req_id, url=url) from exc

        # 6. quota_incrementing
        written = await self.ledger.increment(owner_type, owner_id, limit)
        if written.stored:
            usage = written.usage
        else:
            usage = current.usage.model_copy(update={"used": current.usage.used + 1})

        self._log.info(
            "scrape_completed",
            req_id=req_id,
            url=url,
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
            title_length=len(result.title),
            text_length=len(result.text),
            links_count=len(result.links),
            images_count=len(result.images),
            robots_fallback=robots.fallback_reason,
            quota_stored=written.stored,
        )

        # 7. done
        return ScrapeResponse(result=result, usage=usage)
