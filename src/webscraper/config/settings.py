"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
All feature flags, quotas and scraper limits are accessed exclusively
through this module — never call ``os.getenv`` directly elsewhere in the
codebase.

Usage::

    from webscraper.config.settings import get_settings

    settings = get_settings()
    limit = settings.limit_for("guest")
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from webscraper.scraper import config as defaults
from webscraper.scraper.content_extractor import ExtractionLimits

OwnerType = Literal["user", "guest"]


class Settings(BaseSettings):
    """Service-wide configuration backed by environment variables and an optional .env file.

    Every field has a default so the service starts without any environment;
    production deployments override ``REDIS_URL`` and the quota limits.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "Webscraper"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    allowed_origins: list[str] = ["http://localhost:8000"]
    """Origins permitted by the CORS middleware."""

    # ------------------------------------------------------------------
    # Redis
    # ------------------------------------------------------------------

    redis_url: str | None = "redis://localhost:6379/0"
    """Redis connection URL backing the quota ledger.

    Set to an empty value to run without a quota store; quota reads then
    fail open and increments are not persisted.
    """

    # ------------------------------------------------------------------
    # Feature flag and quotas
    # ------------------------------------------------------------------

    webscraper_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("webscraper_enabled", "public_webscraper_v1"),
    )
    """Master switch for the scrape operation.  Also read from ``PUBLIC_WEBSCRAPER_V1``."""

    webscraper_guest_limit: int = Field(default=defaults.DEFAULT_GUEST_LIMIT, ge=0)
    """Daily scrape budget for anonymous (guest) owners."""

    webscraper_user_limit: int = Field(default=defaults.DEFAULT_USER_LIMIT, ge=0)
    """Daily scrape budget for authenticated owners."""

    webscraper_kv_namespace: str = defaults.KV_NAMESPACE
    """Key prefix for quota records."""

    webscraper_rate_limit: str = "10/minute"
    """Per-client request rate applied to the HTTP route (slowapi syntax)."""

    # ------------------------------------------------------------------
    # Fetch limits
    # ------------------------------------------------------------------

    webscraper_timeout_seconds: float = Field(default=defaults.DEFAULT_TIMEOUT, gt=0)
    webscraper_robots_timeout_seconds: float = Field(default=defaults.ROBOTS_TIMEOUT, gt=0)
    webscraper_max_size_bytes: int = Field(default=defaults.MAX_SIZE_BYTES, gt=0)
    webscraper_max_url_length: int = Field(default=defaults.MAX_URL_LENGTH, gt=0)

    webscraper_allowed_schemes: list[str] = list(defaults.ALLOWED_SCHEMES)
    webscraper_blocked_domains: list[str] = list(defaults.BLOCKED_DOMAINS)
    """Hostname substrings rejected before any network I/O."""

    webscraper_allowed_ports: list[int] = list(defaults.ALLOWED_PORTS)
    """Explicit ports accepted in target URLs."""

    webscraper_own_domains: list[str] = list(defaults.OWN_DOMAINS)
    """Domains served by this deployment; they and their subdomains are never scraped."""

    webscraper_robots_max_bytes: int = Field(default=defaults.ROBOTS_MAX_BYTES, gt=0)

    webscraper_user_agent: str = defaults.USER_AGENT
    webscraper_robots_agent: str = defaults.ROBOTS_USER_AGENT
    """Token matched against ``User-agent:`` lines in robots.txt."""

    webscraper_respect_robots_txt: bool = True

    # ------------------------------------------------------------------
    # Extraction caps
    # ------------------------------------------------------------------

    webscraper_title_max_length: int = Field(default=defaults.TITLE_MAX_LENGTH, ge=1)
    webscraper_description_max_length: int = Field(default=defaults.DESCRIPTION_MAX_LENGTH, ge=1)
    webscraper_text_max_length: int = Field(default=defaults.TEXT_MAX_LENGTH, ge=1)
    webscraper_links_max: int = Field(default=defaults.LINKS_MAX, ge=0)
    webscraper_images_max: int = Field(default=defaults.IMAGES_MAX, ge=0)

    def limit_for(self, owner_type: OwnerType) -> int:
        """Return the daily scrape budget for ``owner_type``."""
        if owner_type == "user":
            return self.webscraper_user_limit
        return self.webscraper_guest_limit

    def extraction_limits(self) -> ExtractionLimits:
        """Bundle the extraction caps for :func:`~webscraper.scraper.content_extractor.extract_content`."""
        return ExtractionLimits(
            title_max_length=self.webscraper_title_max_length,
            description_max_length=self.webscraper_description_max_length,
            text_max_length=self.webscraper_text_max_length,
            links_max=self.webscraper_links_max,
            images_max=self.webscraper_images_max,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Uses ``functools.lru_cache`` so that Pydantic Settings reads the environment
    and .env file exactly once per process lifetime.  In tests, call
    ``get_settings.cache_clear()`` after patching environment variables.

    Returns:
        Settings: The validated settings object.
    """
    return Settings()
