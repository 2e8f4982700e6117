"""Per-owner daily scrape quota backed by a key-value store.

Each owner has one JSON record::

    {namespace}:usage:{owner_type}:{owner_id}  ->  {"count": 3, "resetAt": 1735689600000}

``resetAt`` (epoch milliseconds) is fixed when the first scrape of a window
is recorded and is never moved by later increments.  The record is written
with an absolute expiry at ``resetAt`` so the store evicts it when the window
ends; the next scrape then opens a fresh window.

The read-modify-write in :meth:`QuotaLedger.increment` is not atomic.  Two
concurrent scrapes for the same owner can both pass the quota check and both
write ``count + 1``, so the effective limit may be exceeded by the number of
in-flight requests.

Store failures never propagate: reads fall back to zero usage and failed
writes are reported on the returned :class:`QuotaWrite`.

Typical usage::

    store = RedisKeyValueStore(redis_client)
    ledger = QuotaLedger(store)

    current = await ledger.read("guest", guest_id, limit=5)
    if current.usage.used < current.usage.limit:
        ...
        await ledger.increment("guest", guest_id, limit=5)
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

import redis.asyncio as aioredis
import structlog

from webscraper.scraper.config import KV_NAMESPACE, QUOTA_WINDOW_SECONDS
from webscraper.scraper.schemas import UsageInfo

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Key-value store collaborators
# ---------------------------------------------------------------------------


class KeyValueStore(Protocol):
    """Minimal string key-value store with absolute expiry."""

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, *, expiration: int) -> None:
        """Store ``value`` under ``key`` until ``expiration`` (epoch seconds)."""
        ...


@dataclass
class RedisKeyValueStore:
    """:class:`KeyValueStore` over ``redis.asyncio``.

    Attributes:
        redis_client: An initialised ``redis.asyncio.Redis`` connection.
            Responses may be ``bytes`` or ``str``.
    """

    redis_client: aioredis.Redis

    async def get(self, key: str) -> str | None:
        raw = await self.redis_client.get(key)
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    async def put(self, key: str, value: str, *, expiration: int) -> None:
        await self.redis_client.set(key, value, exat=expiration)


@dataclass
class MemoryKeyValueStore:
    """In-process :class:`KeyValueStore` for local development and tests.

    Expired entries are dropped lazily on read.  Not shared between
    processes.
    """

    _data: dict[str, tuple[str, int]] = field(default_factory=dict, repr=False)

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expiration = entry
        if expiration <= time.time():
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, *, expiration: int) -> None:
        self._data[key] = (value, expiration)


# ---------------------------------------------------------------------------
# Tagged results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuotaRead:
    """Outcome of :meth:`QuotaLedger.read`.

    Attributes:
        usage: Current usage snapshot.
        fallback_reason: ``None`` when a stored record was read; otherwise
            ``"no_store"``, ``"no_record"``, ``"expired"``, ``"malformed"``
            or ``"error: <message>"``.
    """

    usage: UsageInfo
    fallback_reason: str | None = None


@dataclass(frozen=True)
class QuotaWrite:
    """Outcome of :meth:`QuotaLedger.increment`.

    Attributes:
        usage: Usage after the increment.  When ``stored`` is ``False`` this
            is the value that would have been written.
        stored: Whether the record reached the store.
        error: Store error message when ``stored`` is ``False``.
    """

    usage: UsageInfo
    stored: bool = True
    error: str | None = None


@dataclass(frozen=True)
class _Counter:
    count: int
    reset_at_ms: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_datetime(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)


# ---------------------------------------------------------------------------
# QuotaLedger
# ---------------------------------------------------------------------------


class QuotaLedger:
    """Rolling 24-hour scrape counter per owner.

    Args:
        store: Key-value store holding the counters, or ``None`` to run
            without persistence (every read reports zero usage).
        namespace: Key prefix.
        window_seconds: Window length; defaults to 24 hours.
    """

    def __init__(
        self,
        store: KeyValueStore | None,
        namespace: str = KV_NAMESPACE,
        window_seconds: int = QUOTA_WINDOW_SECONDS,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._window_ms = window_seconds * 1000

    def key(self, owner_type: str, owner_id: str) -> str:
        """Return the store key for ``(owner_type, owner_id)``."""
        return f"{self._namespace}:usage:{owner_type}:{owner_id}"

    @staticmethod
    def _decode(raw: str) -> _Counter | None:
        try:
            parsed = json.loads(raw)
            count = int(parsed.get("count") or 0)
            reset_at = int(parsed.get("resetAt") or 0)
        except (ValueError, TypeError, AttributeError):
            return None
        return _Counter(count=max(count, 0), reset_at_ms=reset_at)

    async def _load(
        self, store: KeyValueStore, key: str
    ) -> tuple[_Counter | None, str | None]:
        """Return the live counter at ``key`` and, if absent, why."""
        raw = await store.get(key)
        if not raw:
            return None, "no_record"
        counter = self._decode(raw)
        if counter is None:
            return None, "malformed"
        if counter.reset_at_ms and counter.reset_at_ms <= _now_ms():
            return None, "expired"
        return counter, None

    async def read(self, owner_type: str, owner_id: str, limit: int) -> QuotaRead:
        """Return the owner's current usage.  Never raises."""
        empty = UsageInfo(used=0, limit=limit, reset_at=None)
        if self._store is None:
            return QuotaRead(usage=empty, fallback_reason="no_store")

        try:
            counter, reason = await self._load(self._store, self.key(owner_type, owner_id))
        except Exception as exc:  # noqa: BLE001
            logger.warning("quota_read_failed", owner_type=owner_type, owner_id=owner_id, error=str(exc))
            return QuotaRead(usage=empty, fallback_reason=f"error: {exc}")

        if counter is None:
            return QuotaRead(usage=empty, fallback_reason=reason)
        return QuotaRead(
            usage=UsageInfo(
                used=counter.count,
                limit=limit,
                reset_at=_to_datetime(counter.reset_at_ms) if counter.reset_at_ms else None,
            )
        )

    async def increment(self, owner_type: str, owner_id: str, limit: int) -> QuotaWrite:
        """Record one successful scrape for the owner.  Never raises.

        Opens a new window (``count=1``, ``resetAt=now+window``) when no live
        record exists; otherwise increments ``count`` and keeps ``resetAt``.
        """
        now_ms = _now_ms()
        fresh = _Counter(count=1, reset_at_ms=now_ms + self._window_ms)

        if self._store is None:
            return QuotaWrite(
                usage=UsageInfo(used=1, limit=limit, reset_at=None),
                stored=False,
                error="no_store",
            )

        key = self.key(owner_type, owner_id)
        try:
            current, _ = await self._load(self._store, key)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "quota_increment_failed", owner_type=owner_type, owner_id=owner_id, error=str(exc)
            )
            return QuotaWrite(usage=self._usage(fresh, limit), stored=False, error=str(exc))

        if current is None or not current.reset_at_ms:
            updated = _Counter(count=(current.count if current else 0) + 1, reset_at_ms=fresh.reset_at_ms)
        else:
            updated = _Counter(count=current.count + 1, reset_at_ms=current.reset_at_ms)

        value = json.dumps({"count": updated.count, "resetAt": updated.reset_at_ms})
        try:
            await self._store.put(key, value, expiration=updated.reset_at_ms // 1000)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "quota_increment_failed", owner_type=owner_type, owner_id=owner_id, error=str(exc)
            )
            return QuotaWrite(usage=self._usage(updated, limit), stored=False, error=str(exc))

        return QuotaWrite(usage=self._usage(updated, limit))

    @staticmethod
    def _usage(counter: _Counter, limit: int) -> UsageInfo:
        return UsageInfo(used=counter.count, limit=limit, reset_at=_to_datetime(counter.reset_at_ms))
