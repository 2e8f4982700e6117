"""Shared pytest fixtures for webscraper tests.

Fixture summary
---------------
settings        — Settings with defaults, no .env file and no Redis.
memory_store    — Fresh in-process key-value store.
mock_store      — AsyncMock-backed store factory with a preset ``get`` value.
mock_logger     — MagicMock standing in for the structlog logger.

Every test runs without infrastructure: HTTP is mocked with respx or
``httpx.MockTransport`` and the quota store is in-process or mocked.
"""

from __future__ import annotations

import json
import time
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from webscraper.config.settings import Settings, get_settings
from webscraper.scraper.quota import MemoryKeyValueStore

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------

# Settings() must not pick up a developer's .env or a live Redis.
get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Shared HTML fixtures
# ---------------------------------------------------------------------------

SIMPLE_PAGE_HTML = (
    "<html><head><title>Test</title></head><body><p>Test</p></body></html>"
)


def usage_record(count: int, *, reset_in_seconds: int = 86_400) -> str:
    """Return a stored quota record JSON with ``resetAt`` in the future."""
    reset_at = int(time.time() * 1000) + reset_in_seconds * 1000
    return json.dumps({"count": count, "resetAt": reset_at})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Default settings with quota persistence handled by the test."""
    return Settings(
        _env_file=None,
        redis_url=None,
        webscraper_guest_limit=5,
        webscraper_user_limit=20,
    )


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def mock_store() -> Callable[..., MagicMock]:
    """Return a factory building a store whose ``get`` yields ``raw``."""

    def _make(raw: str | None = None) -> MagicMock:
        store = MagicMock()
        store.get = AsyncMock(return_value=raw)
        store.put = AsyncMock(return_value=None)
        return store

    return _make


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock()
