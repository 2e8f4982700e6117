"""robots.txt fetching, parsing and rule evaluation.

The parser is deliberately small: each ``User-agent:`` line opens a new
rule record that collects the ``Disallow`` / ``Allow`` / ``Crawl-delay``
lines following it.  Consecutive ``User-agent:`` lines are *not* merged into
one group, and wildcards (``*`` / ``$``) inside paths are not interpreted;
paths match by plain prefix.

Every failure to obtain or read a robots.txt is fail-open: the check
returns an allowed :class:`RobotsDecision` whose ``fallback_reason`` says
why no rule set was evaluated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
import structlog

from webscraper.scraper.config import (
    ROBOTS_MAX_BYTES,
    ROBOTS_TIMEOUT,
    ROBOTS_USER_AGENT,
    ROBOTS_USER_AGENT_FALLBACK,
    USER_AGENT,
)

logger = structlog.get_logger(__name__)


@dataclass
class RobotsTxtRule:
    """Directives collected under one ``User-agent:`` line."""

    user_agent: str
    allow: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)
    crawl_delay: int | None = None


@dataclass(frozen=True)
class RobotsDecision:
    """Result of a robots.txt check.

    Attributes:
        allowed: Whether the target path may be fetched.
        fallback_reason: ``None`` when a rule set was evaluated; otherwise
            one of ``"disabled"``, ``"not_found"``, ``"no_matching_rule"`` or
            ``"error: <message>"`` describing the fail-open path taken.
        crawl_delay: ``Crawl-delay`` of the selected rule, if any.
    """

    allowed: bool
    fallback_reason: str | None = None
    crawl_delay: int | None = None


# ---------------------------------------------------------------------------
# Parsing and evaluation
# ---------------------------------------------------------------------------


def robots_url_for(url: str) -> str:
    """Return ``{scheme}://{host}[:{port}]/robots.txt`` for ``url``.

    Userinfo in the target URL is not carried over.
    """
    parsed = urlparse(url)
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parsed.port is not None:
        host = f"{host}:{parsed.port}"
    return f"{parsed.scheme}://{host}/robots.txt"


def parse_robots_txt(content: str) -> list[RobotsTxtRule]:
    """Parse robots.txt ``content`` into rule records, in file order.

    Blank lines and ``#`` comments are skipped, directive names are
    case-insensitive, and directives seen before the first ``User-agent:``
    line are ignored.
    """
    rules: list[RobotsTxtRule] = []
    current: RobotsTxtRule | None = None

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue

        key, _, value = trimmed.partition(":")
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            current = RobotsTxtRule(user_agent=value)
            rules.append(current)
        elif current is None:
            continue
        elif key == "disallow" and value:
            current.disallow.append(value)
        elif key == "allow" and value:
            current.allow.append(value)
        elif key == "crawl-delay":
            try:
                current.crawl_delay = int(value) or None
            except ValueError:
                current.crawl_delay = None

    return rules


def select_rule(
    rules: list[RobotsTxtRule],
    agent: str = ROBOTS_USER_AGENT,
) -> RobotsTxtRule | None:
    """Return the first rule naming ``agent`` (case-insensitive), else the first ``*`` rule."""
    agent_lower = agent.lower()
    for rule in rules:
        if rule.user_agent.lower() == agent_lower:
            return rule
    for rule in rules:
        if rule.user_agent == ROBOTS_USER_AGENT_FALLBACK:
            return rule
    return None


def is_path_allowed(rule: RobotsTxtRule, path: str) -> bool:
    """Evaluate ``path`` against ``rule``.

    A disallow prefix match blocks the path unless an allow prefix also
    matches; allow wins over disallow regardless of prefix length.
    """
    path = path or "/"
    disallowed = any(pattern == "/" or path.startswith(pattern) for pattern in rule.disallow)
    if not disallowed:
        return True
    return any(path.startswith(pattern) for pattern in rule.allow)


def evaluate_robots_txt(
    content: str,
    path: str,
    agent: str = ROBOTS_USER_AGENT,
) -> RobotsDecision:
    """Parse ``content`` and decide whether ``agent`` may fetch ``path``."""
    rule = select_rule(parse_robots_txt(content), agent)
    if rule is None:
        return RobotsDecision(allowed=True, fallback_reason="no_matching_rule")
    return RobotsDecision(
        allowed=is_path_allowed(rule, path),
        crawl_delay=rule.crawl_delay,
    )


# ---------------------------------------------------------------------------
# Network check
# ---------------------------------------------------------------------------


async def _read_capped(response: httpx.Response, max_bytes: int) -> str:
    """Read at most ``max_bytes`` of ``response`` and decode it."""
    body = bytearray()
    async for chunk in response.aiter_bytes():
        body.extend(chunk)
        if len(body) >= max_bytes:
            break
    return bytes(body[:max_bytes]).decode(response.encoding or "utf-8", errors="replace")


async def check_robots_txt(
    url: str,
    *,
    client: httpx.AsyncClient,
    user_agent: str = USER_AGENT,
    robots_agent: str = ROBOTS_USER_AGENT,
    timeout: float = ROBOTS_TIMEOUT,
    max_bytes: int = ROBOTS_MAX_BYTES,
) -> RobotsDecision:
    """Fetch the site's robots.txt and decide whether ``url`` may be fetched.

    A non-2xx response means the site publishes no policy and the URL is
    allowed.  Only the first ``max_bytes`` of the file are parsed.  Network,
    decode or parse errors are logged as ``robots_txt_check_failed`` and
    also allow the URL.

    Args:
        url: Validated target URL.
        client: Shared :class:`httpx.AsyncClient`.
        user_agent: ``User-Agent`` header sent with the robots.txt request.
        robots_agent: Token matched against ``User-agent:`` lines.
        timeout: Seconds to wait for robots.txt.
        max_bytes: Read budget for the robots.txt body.

    Returns:
        A :class:`RobotsDecision`.
    """
    try:
        async with client.stream(
            "GET",
            robots_url_for(url),
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        ) as response:
            if not response.is_success:
                return RobotsDecision(allowed=True, fallback_reason="not_found")
            content = await _read_capped(response, max_bytes)
        path = urlparse(url).path or "/"
        return evaluate_robots_txt(content, path, robots_agent)
    except Exception as exc:  # noqa: BLE001
        logger.warning("robots_txt_check_failed", url=url, error=str(exc))
        return RobotsDecision(allowed=True, fallback_reason=f"error: {exc}")
