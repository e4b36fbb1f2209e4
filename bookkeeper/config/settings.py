"""
Configuration Management for Bookkeeper

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here so it is easy to see which
external dependencies exist (local database file, remote backend)
and so required values are validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKKEEPER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_path: str = Field(
        default="bookkeeping.db",
        description="Path to the local SQLite document database"
    )

    @property
    def is_in_memory(self) -> bool:
        return self.database_path == ":memory:"


class EncryptionSettings(BaseSettings):
    """Field-level encryption configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKKEEPER_ENCRYPTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Encrypt sensitive fields when credentials are available"
    )
    kdf_iterations: int = Field(
        default=100_000,
        ge=1_000,
        description="PBKDF2 iterations used to derive the encryption key"
    )


class SyncSettings(BaseSettings):
    """Outbox / cloud sync configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKKEEPER_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=False,
        description="Queue local writes for the remote backend"
    )
    interval_seconds: int = Field(
        default=300,
        ge=5,
        description="Seconds between periodic outbox replays"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per outbox entry before a replay gives up"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet that mirrors the local store"
    )
    worksheet_prefix: str = Field(
        default="",
        description="Optional prefix for per-collection worksheet names"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before enabling cloud sync."
            )
        return v


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (console log rendering)"
    )

    # Locale defaults, used until onboarding stores a business config
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO currency code used before onboarding"
    )
    default_locale: str = Field(
        default="en-US",
        description="Locale used before onboarding"
    )

    # Validation thresholds
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be without a warning"
    )

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def encryption(self) -> EncryptionSettings:
        return EncryptionSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus
    {setting_name}_error entries for the failures.
    Useful for startup checks and the Settings page.
    """
    results: dict[str, object] = {}

    settings = get_settings()

    for name in ("storage", "encryption", "sync", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results


def optional_google_sheets() -> Optional[GoogleSheetsSettings]:
    """Google Sheets settings, or None when the backend is not configured."""
    try:
        return get_settings().google_sheets
    except ValidationError:
        return None
