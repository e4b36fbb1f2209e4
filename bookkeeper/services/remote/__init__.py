"""Remote sync backends."""

from bookkeeper.services.remote.google_sheets import (
    REMOTE_COLUMNS,
    GoogleSheetsClient,
    GoogleSheetsRemoteBackend,
)

__all__ = [
    "REMOTE_COLUMNS",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteBackend",
]
