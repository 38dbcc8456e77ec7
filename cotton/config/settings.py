"""
Configuration Management for Cotton

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Local data cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COTTON_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    variant: Literal["remote", "local"] = Field(
        default="remote",
        description="'remote' fetches over the network with a TTL, "
                    "'local' reads the on-device database and never expires"
    )
    ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="How long a fetched collection stays fresh"
    )
    storage_dir: str = Field(
        default=".cotton_cache",
        description="Directory for persisted collection snapshots"
    )
    persist_snapshots: bool = Field(
        default=True,
        description="Mirror collections to on-device storage"
    )
    key_prefix: str = Field(
        default="",
        description="Prefix for snapshot storage keys (e.g. per signed-in user)"
    )


class ParseSettings(BaseSettings):
    """Parse Server (remote backend) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PARSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    server_url: str = Field(
        ...,
        description="Parse Server base URL, e.g. https://api.example.com/parse"
    )
    app_id: str = Field(
        ...,
        description="Parse application id"
    )
    js_key: str = Field(
        default="",
        description="Parse JavaScript key"
    )
    session_token: Optional[str] = Field(
        default=None,
        description="Session token of the signed-in user"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Per-request timeout"
    )
    connect_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts when the connection cannot be established"
    )

    @field_validator("server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class LocalDatabaseSettings(BaseSettings):
    """On-device database configuration (local-first variant)."""

    model_config = SettingsConfigDict(
        env_prefix="COTTON_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    path: str = Field(
        default="cotton.db",
        description="SQLite database file"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration.
    # The local-first variant runs without any Parse settings.

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def parse(self) -> ParseSettings:
        return ParseSettings()

    @property
    def database(self) -> LocalDatabaseSettings:
        return LocalDatabaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("cache", "parse", "database", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
