"""Input URL validation: the first SSRF guard before any network I/O."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlparse

from webscraper.scraper.config import (
    ALLOWED_PORTS,
    ALLOWED_SCHEMES,
    BLOCKED_DOMAINS,
    MAX_URL_LENGTH,
    OWN_DOMAINS,
)


@dataclass(frozen=True)
class UrlValidation:
    """Outcome of :func:`validate_url`.  ``reason`` is empty when valid."""

    valid: bool
    reason: str = ""


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def _matches_domain(hostname: str, domain: str) -> bool:
    domain = domain.lower().lstrip(".")
    return bool(domain) and (hostname == domain or hostname.endswith(f".{domain}"))


def validate_url(
    url: str,
    *,
    max_length: int = MAX_URL_LENGTH,
    allowed_schemes: Iterable[str] = ALLOWED_SCHEMES,
    blocked_domains: Iterable[str] = BLOCKED_DOMAINS,
    allowed_ports: Iterable[int] = ALLOWED_PORTS,
    own_domains: Iterable[str] = OWN_DOMAINS,
) -> UrlValidation:
    """Check that ``url`` is safe to fetch.

    Checks, in order:

    1. non-empty and at most ``max_length`` characters;
    2. absolute URL with a host and, if present, a numeric port;
    3. scheme in ``allowed_schemes``;
    4. hostname free of every ``blocked_domains`` substring;
    5. hostname not one of ``own_domains`` or a subdomain of one;
    6. hostname is a name, not an IPv4/IPv6 literal;
    7. explicit port in ``allowed_ports``.

    Args:
        url: Raw URL supplied by the caller.
        max_length: Maximum accepted URL length.
        allowed_schemes: Accepted schemes, without the trailing colon.
        blocked_domains: Hostname substrings that are always rejected.
        allowed_ports: Explicit ports that are accepted.
        own_domains: Domains of this deployment; scraping them is refused.

    Returns:
        A :class:`UrlValidation`; never raises.
    """
    if not url or len(url) > max_length:
        return UrlValidation(False, "URL too long or empty")

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        port = parsed.port
    except ValueError:
        return UrlValidation(False, "Invalid URL format")

    if not parsed.scheme or not parsed.netloc:
        return UrlValidation(False, "Invalid URL format")

    schemes = [s.lower() for s in allowed_schemes]
    if parsed.scheme.lower() not in schemes:
        allowed = "/".join(s.upper() for s in schemes)
        return UrlValidation(False, f"Only {allowed} URLs are allowed")

    if not hostname:
        return UrlValidation(False, "Invalid URL format")

    if any(blocked.lower() in hostname for blocked in blocked_domains):
        return UrlValidation(False, "URL domain is blocked")

    if any(_matches_domain(hostname, domain) for domain in own_domains):
        return UrlValidation(False, "Cannot scrape own domain")

    if _is_ip_literal(hostname):
        return UrlValidation(False, "IP addresses are not allowed")

    if port is not None and port not in set(allowed_ports):
        return UrlValidation(False, "URL port is not allowed")

    return UrlValidation(True)
