"""Tests for the scrape orchestrator.

Covers the full validate → quota → robots.txt → fetch → parse → count
pipeline with HTTP mocked by respx and the quota store mocked or in-memory.
Each failure mode must raise its typed error and must not consume quota.
"""

from __future__ import annotations

import json
from typing import Callable
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx

from tests.conftest import SIMPLE_PAGE_HTML, usage_record
from webscraper.config.settings import Settings
from webscraper.core.exceptions import (
    FeatureDisabledError,
    ParseError,
    QuotaExceededError,
    RobotsTxtBlockedError,
    ScrapeFetchError,
    ValidationError,
)
from webscraper.scraper.quota import MemoryKeyValueStore
from webscraper.scraper.schemas import ScrapeInput
from webscraper.scraper.service import WebscraperService

_BASE = "https://example.com"
_HTML_HEADERS = {"content-type": "text/html; charset=utf-8"}


def _page(html: str = SIMPLE_PAGE_HTML) -> httpx.Response:
    return httpx.Response(200, text=html, headers=_HTML_HEADERS)


# ---------------------------------------------------------------------------
# Successful scrapes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestScrapeSuccess:
    async def test_first_scrape_with_memory_store(
        self, settings: Settings, memory_store: MemoryKeyValueStore
    ) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=memory_store, client=client)
                response = await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        result = response.result
        assert result.url == f"{_BASE}/page"
        assert result.title == "Test"
        assert result.text == "Test"
        assert result.robots_txt_allowed is True
        assert result.scraped_at is not None
        assert result.scraped_at.tzinfo is not None
        assert response.usage.used == 1
        assert response.usage.limit == 5
        assert response.usage.reset_at is not None

    async def test_existing_usage_incremented_and_reset_at_kept(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        raw = usage_record(2)
        store = mock_store(raw)

        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                response = await service.scrape(ScrapeInput(url=f"{_BASE}/"), "guest", "g1")

        assert response.usage.used == 3
        key, value = store.put.call_args.args
        assert key == "webscraper:usage:guest:g1"
        assert json.loads(value) == {"count": 3, "resetAt": json.loads(raw)["resetAt"]}

    async def test_allow_all_robots(self, settings: Settings, memory_store: MemoryKeyValueStore) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(
                return_value=httpx.Response(200, text="User-agent: *\nAllow: /")
            )
            mock.get("/deep/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=memory_store, client=client)
                response = await service.scrape(
                    ScrapeInput(url=f"{_BASE}/deep/page"), "user", "u1"
                )

        assert response.result.robots_txt_allowed is True
        assert response.usage.limit == 20

    async def test_limit_override_raises_budget(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(usage_record(20))

        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                response = await service.scrape(
                    ScrapeInput(url=f"{_BASE}/"), "user", "u1", limit=50
                )

        assert response.usage.used == 21
        assert response.usage.limit == 50

    async def test_robots_check_can_be_disabled(
        self, settings: Settings, memory_store: MemoryKeyValueStore
    ) -> None:
        settings = settings.model_copy(update={"webscraper_respect_robots_txt": False})

        with respx.mock(base_url=_BASE, assert_all_called=False) as mock:
            robots = mock.get("/robots.txt").mock(
                return_value=httpx.Response(200, text="User-agent: *\nDisallow: /")
            )
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=memory_store, client=client)
                await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        assert robots.call_count == 0

    async def test_opens_own_client_when_none_injected(
        self, settings: Settings, memory_store: MemoryKeyValueStore
    ) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            service = WebscraperService(settings, store=memory_store)
            response = await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        assert response.result.title == "Test"

    async def test_without_store_usage_still_reported(self, settings: Settings) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, client=client)
                response = await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        assert response.usage.used == 1
        assert response.usage.limit == 5

    async def test_completion_logged(
        self, settings: Settings, memory_store: MemoryKeyValueStore, mock_logger: MagicMock
    ) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(
                    settings, store=memory_store, client=client, logger=mock_logger
                )
                await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        events = [c.args[0] for c in mock_logger.info.call_args_list]
        assert events == ["scrape_requested", "scrape_completed"]
        completed = mock_logger.info.call_args_list[-1].kwargs
        assert completed["robots_fallback"] == "not_found"
        assert completed["quota_stored"] is True
        assert completed["req_id"].startswith("scrape-")


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestScrapeStoreFailures:
    async def test_put_failure_does_not_fail_scrape(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(usage_record(1))
        store.put.side_effect = ConnectionError("write refused")

        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                response = await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        assert response.usage.used == 2
        store.put.assert_awaited_once()

    async def test_get_failure_fails_open(self, settings: Settings) -> None:
        store = MagicMock()
        store.get = AsyncMock(side_effect=ConnectionError("redis down"))
        store.put = AsyncMock()

        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                response = await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        assert response.result.title == "Test"
        assert response.usage.used == 1


# ---------------------------------------------------------------------------
# Typed failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestScrapeFailures:
    async def test_feature_disabled(
        self, settings: Settings, mock_store: Callable[..., MagicMock], mock_logger: MagicMock
    ) -> None:
        settings = settings.model_copy(update={"webscraper_enabled": False})
        store = mock_store(None)
        service = WebscraperService(settings, store=store, logger=mock_logger)

        with pytest.raises(FeatureDisabledError) as excinfo:
            await service.scrape(ScrapeInput(url=f"{_BASE}/"), "guest", "g1")

        assert excinfo.value.code == "feature_disabled"
        assert excinfo.value.message == "feature_not_enabled"
        assert mock_logger.warning.call_args.args[0] == "scrape_blocked_by_flag"
        store.get.assert_not_awaited()

    async def test_invalid_scheme_makes_no_calls(
        self, settings: Settings, mock_store: Callable[..., MagicMock], mock_logger: MagicMock
    ) -> None:
        store = mock_store(None)

        with respx.mock(assert_all_called=False) as mock:
            async with httpx.AsyncClient() as client:
                service = WebscraperService(
                    settings, store=store, client=client, logger=mock_logger
                )
                with pytest.raises(ValidationError) as excinfo:
                    await service.scrape(ScrapeInput(url="ftp://example.com"), "guest", "g1")

        assert excinfo.value.message == "Only HTTP/HTTPS URLs are allowed"
        assert mock.calls.call_count == 0
        store.get.assert_not_awaited()
        store.put.assert_not_awaited()
        failed = mock_logger.error.call_args
        assert failed.args[0] == "scrape_failed"
        assert failed.kwargs["error_kind"] == "validation_error"

    async def test_blocked_host(self, settings: Settings) -> None:
        service = WebscraperService(settings)

        with pytest.raises(ValidationError, match="URL domain is blocked"):
            await service.scrape(
                ScrapeInput(url="http://169.254.169.254/latest/meta-data/"), "guest", "g1"
            )

    @pytest.mark.parametrize(
        ("url", "message"),
        [
            ("http://example.com:abc/", "Invalid URL format"),
            ("http://example.com:6379/", "URL port is not allowed"),
            ("http://10.0.0.1/", "IP addresses are not allowed"),
        ],
    )
    async def test_unsafe_target_makes_no_calls(
        self, settings: Settings, mock_store: Callable[..., MagicMock], url: str, message: str
    ) -> None:
        store = mock_store(None)

        with respx.mock(assert_all_called=False) as mock:
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                with pytest.raises(ValidationError) as excinfo:
                    await service.scrape(ScrapeInput(url=url), "guest", "g1")

        assert excinfo.value.message == message
        assert mock.calls.call_count == 0
        store.get.assert_not_awaited()

    async def test_own_domain_from_settings(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"webscraper_own_domains": ["myapp.example"]})
        service = WebscraperService(settings)

        with pytest.raises(ValidationError, match="Cannot scrape own domain"):
            await service.scrape(ScrapeInput(url="https://www.myapp.example/"), "guest", "g1")

    async def test_quota_exceeded_makes_no_calls(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(usage_record(5))

        with respx.mock(assert_all_called=False) as mock:
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                with pytest.raises(QuotaExceededError) as excinfo:
                    await service.scrape(ScrapeInput(url=f"{_BASE}/"), "guest", "g1")

        assert str(excinfo.value) == "Quota exceeded. Used 5/5"
        assert excinfo.value.usage.used == 5
        assert excinfo.value.usage.limit == 5
        assert excinfo.value.usage.reset_at is not None
        assert mock.calls.call_count == 0
        store.put.assert_not_awaited()

    async def test_user_limit_applies_to_users(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(usage_record(20))
        service = WebscraperService(settings, store=store)

        with pytest.raises(QuotaExceededError, match="Used 20/20"):
            await service.scrape(ScrapeInput(url=f"{_BASE}/"), "user", "u1")

    async def test_limit_override_lowers_budget(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(usage_record(2))
        service = WebscraperService(settings, store=store)

        with pytest.raises(QuotaExceededError) as excinfo:
            await service.scrape(ScrapeInput(url=f"{_BASE}/"), "guest", "g1", limit=2)

        assert str(excinfo.value) == "Quota exceeded. Used 2/2"
        assert excinfo.value.usage.limit == 2

    async def test_robots_disallow(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(None)

        with respx.mock(base_url=_BASE, assert_all_called=False) as mock:
            mock.get("/robots.txt").mock(
                return_value=httpx.Response(200, text="User-agent: *\nDisallow: /admin")
            )
            page = mock.get("/admin/x").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                with pytest.raises(RobotsTxtBlockedError) as excinfo:
                    await service.scrape(ScrapeInput(url=f"{_BASE}/admin/x"), "guest", "g1")

        assert excinfo.value.message == "robots.txt disallows scraping this URL"
        assert page.call_count == 0
        store.put.assert_not_awaited()

    async def test_fetch_timeout(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(None)

        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/slow").mock(side_effect=httpx.ReadTimeout("slow"))
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                with pytest.raises(ScrapeFetchError) as excinfo:
                    await service.scrape(ScrapeInput(url=f"{_BASE}/slow"), "guest", "g1")

        assert excinfo.value.code == "fetch_error"
        assert excinfo.value.message == "Fetch failed: Request timeout"
        store.put.assert_not_awaited()

    async def test_http_error_status(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/broken").mock(return_value=httpx.Response(500))
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=mock_store(None), client=client)
                with pytest.raises(
                    ScrapeFetchError, match="Fetch failed: HTTP 500: Internal Server Error"
                ):
                    await service.scrape(ScrapeInput(url=f"{_BASE}/broken"), "guest", "g1")

    async def test_non_html(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        with respx.mock(base_url=_BASE) as mock:
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/file.pdf").mock(
                return_value=httpx.Response(
                    200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"}
                )
            )
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=mock_store(None), client=client)
                with pytest.raises(ScrapeFetchError, match="Content-Type is not HTML"):
                    await service.scrape(ScrapeInput(url=f"{_BASE}/file.pdf"), "guest", "g1")

    async def test_parse_error(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(None)

        with (
            respx.mock(base_url=_BASE) as mock,
            patch(
                "webscraper.scraper.service.extract_content",
                side_effect=RuntimeError("parser exploded"),
            ),
        ):
            mock.get("/robots.txt").mock(return_value=httpx.Response(404))
            mock.get("/page").mock(return_value=_page())
            async with httpx.AsyncClient() as client:
                service = WebscraperService(settings, store=store, client=client)
                with pytest.raises(ParseError) as excinfo:
                    await service.scrape(ScrapeInput(url=f"{_BASE}/page"), "guest", "g1")

        assert excinfo.value.code == "parse_error"
        assert excinfo.value.message == "Parse failed: parser exploded"
        store.put.assert_not_awaited()


# ---------------------------------------------------------------------------
# Usage lookup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestGetUsage:
    async def test_reports_stored_usage_without_writing(
        self, settings: Settings, mock_store: Callable[..., MagicMock]
    ) -> None:
        store = mock_store(usage_record(3))
        service = WebscraperService(settings, store=store)

        usage = await service.get_usage("guest", "g1")

        assert usage.used == 3
        assert usage.limit == 5
        assert usage.reset_at is not None
        store.get.assert_awaited_once_with("webscraper:usage:guest:g1")
        store.put.assert_not_awaited()

    async def test_new_owner_has_zero_usage(
        self, settings: Settings, memory_store: MemoryKeyValueStore
    ) -> None:
        service = WebscraperService(settings, store=memory_store)

        usage = await service.get_usage("user", "u1")

        assert usage.used == 0
        assert usage.limit == 20
        assert usage.reset_at is None

    async def test_limit_override(
        self, settings: Settings, memory_store: MemoryKeyValueStore
    ) -> None:
        service = WebscraperService(settings, store=memory_store)

        assert (await service.get_usage("guest", "g1", limit=100)).limit == 100
        assert (await service.get_usage("guest", "g1", limit=-3)).limit == 0
