"""Configuration package."""

from bookkeeper.config.settings import (
    AppSettings,
    EncryptionSettings,
    GoogleSheetsSettings,
    Settings,
    StorageSettings,
    SyncSettings,
    get_settings,
    optional_google_sheets,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "EncryptionSettings",
    "GoogleSheetsSettings",
    "Settings",
    "StorageSettings",
    "SyncSettings",
    "get_settings",
    "optional_google_sheets",
    "validate_all_settings",
]
