"""Structured logging configuration using structlog.

Call ``configure_logging()`` once at application startup.  Modules then log
scrape lifecycle events through structlog::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("scrape_requested", url=url, owner_type="guest")

Stdlib ``logging.getLogger(__name__)`` records are routed through the same
processor chain, so both styles end up in one JSON stream.

A ``request_id`` context variable is populated by the request-logging
middleware in ``api/main.py`` and merged into every record emitted while
that request is being served.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Per-request ID propagated from the HTTP middleware to log processors."""


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "authorization",
    "cookie",
    "password",
    "secret",
    "token",
    "api_key",
    "redis_url",
})
"""Lower-cased substrings that identify event-dict keys whose values must be
redacted before the record reaches any renderer."""

_OWNER_ID_VISIBLE_CHARS = 4


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with a redaction marker.

    Top-level keys and the keys of nested dicts one level deep (e.g. a
    ``headers={...}`` value) are matched case-insensitively against
    :data:`_SECRET_SUBSTRINGS`.
    """
    redacted = "[REDACTED]"
    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in _SECRET_SUBSTRINGS):
            event_dict[key] = redacted
            continue
        val = event_dict[key]
        if isinstance(val, dict):
            event_dict[key] = {
                k: redacted if any(s in str(k).lower() for s in _SECRET_SUBSTRINGS) else v
                for k, v in val.items()
            }
    return event_dict


def mask_owner_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Truncate ``owner_id`` to its last few characters.

    Guest ids are bearer cookies and user ids are account identifiers;
    neither belongs in log storage in full.
    """
    owner_id = event_dict.get("owner_id")
    if isinstance(owner_id, str) and len(owner_id) > _OWNER_ID_VISIBLE_CHARS:
        event_dict["owner_id"] = owner_id[-_OWNER_ID_VISIBLE_CHARS:]
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Add the current HTTP request ID to the event dict if one is set."""
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


# ---------------------------------------------------------------------------
# Public configuration entry-point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog with JSON output for production.

    With ``log_level == "DEBUG"`` records are rendered by structlog's
    ``ConsoleRenderer``; any other level emits newline-delimited JSON with
    ``timestamp``, ``level``, ``logger``, ``event`` and (inside a request)
    ``request_id`` fields.

    Safe to call repeatedly; handlers attached by a previous call are
    replaced.

    Args:
        log_level: Logging verbosity string.  Case-insensitive.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        _redact_secrets,
        mask_owner_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # httpx logs every request line at INFO; robots.txt lookups double that.
    if not is_development:
        for noisy_logger in ("uvicorn.access", "httpx", "httpcore"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
