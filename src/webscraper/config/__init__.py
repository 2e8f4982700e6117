"""Configuration package for the webscraper service.

Re-exports the settings symbols so that callers can write::

    from webscraper.config import get_settings
"""

from __future__ import annotations

from webscraper.config.settings import OwnerType, Settings, get_settings

__all__ = [
    "OwnerType",
    "Settings",
    "get_settings",
]
