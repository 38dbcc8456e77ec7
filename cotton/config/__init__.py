"""Configuration package."""

from cotton.config.settings import (
    AppSettings,
    CacheSettings,
    LocalDatabaseSettings,
    ParseSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "LocalDatabaseSettings",
    "ParseSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
