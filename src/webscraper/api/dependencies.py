"""FastAPI dependencies: Redis client, scrape service and owner resolution."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, AsyncGenerator

import httpx
import redis.asyncio as aioredis
from fastapi import Depends, Request, Response

from webscraper.config.settings import OwnerType, get_settings
from webscraper.scraper.quota import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore
from webscraper.scraper.service import WebscraperService

#: Cookie carrying the anonymous owner id.
GUEST_COOKIE_NAME = "guest_id"

#: Lifetime of the guest cookie (180 days).
GUEST_COOKIE_MAX_AGE = 60 * 60 * 24 * 180


# ---------------------------------------------------------------------------
# Redis async client
# ---------------------------------------------------------------------------


async def get_redis() -> AsyncGenerator[aioredis.Redis | None, None]:
    """Yield a per-request async Redis client and close it on teardown.

    Yields ``None`` when ``REDIS_URL`` is empty, in which case quotas are
    kept in the process-local store from :func:`get_memory_store`.  The connection is opened lazily on first
    I/O, so an unreachable Redis surfaces as a quota fallback, not here.
    """
    settings = get_settings()
    if not settings.redis_url:
        yield None
        return
    client: aioredis.Redis = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        yield client
    finally:
        await client.aclose()


# ---------------------------------------------------------------------------
# Scrape service
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_memory_store() -> MemoryKeyValueStore:
    """Return the process-wide in-memory quota store used when Redis is not configured.

    Counters live only as long as the process and are not shared between
    workers, so this is suitable for local development only.
    """
    return MemoryKeyValueStore()


async def get_webscraper_service(
    redis: Annotated[aioredis.Redis | None, Depends(get_redis)],
) -> AsyncGenerator[WebscraperService, None]:
    """Yield a :class:`WebscraperService` wired to Redis and a request-scoped HTTP client."""
    store: KeyValueStore = RedisKeyValueStore(redis) if redis is not None else get_memory_store()
    async with httpx.AsyncClient() as client:
        yield WebscraperService(get_settings(), store=store, client=client)


# ---------------------------------------------------------------------------
# Owner identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Owner:
    """Quota owner for the current request.

    Attributes:
        owner_type: ``"user"`` when an upstream auth layer set
            ``request.state.user_id``, otherwise ``"guest"``.
        owner_id: User id or guest cookie value.
        issued_guest_id: ``True`` when a new guest id was minted for this
            request and must be sent back as a cookie.
        limit: Plan-specific daily budget set upstream as
            ``request.state.webscraper_limit``; ``None`` uses the configured
            default for ``owner_type``.
    """

    owner_type: OwnerType
    owner_id: str
    issued_guest_id: bool = False
    limit: int | None = None


def get_owner(request: Request) -> Owner:
    """Resolve the quota owner for ``request``."""
    limit = getattr(request.state, "webscraper_limit", None)
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return Owner(owner_type="user", owner_id=str(user_id), limit=limit)

    guest_id = request.cookies.get(GUEST_COOKIE_NAME)
    if guest_id:
        return Owner(owner_type="guest", owner_id=guest_id, limit=limit)
    return Owner(
        owner_type="guest",
        owner_id=str(uuid.uuid4()),
        issued_guest_id=True,
        limit=limit,
    )


def set_guest_cookie(response: Response, owner: Owner, *, secure: bool) -> None:
    """Attach the guest id cookie to ``response`` if one was just minted."""
    if not owner.issued_guest_id:
        return
    response.set_cookie(
        GUEST_COOKIE_NAME,
        owner.owner_id,
        max_age=GUEST_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
    )
