"""
Google Sheets Remote Backend

The hosted sync target. Each collection is mirrored to its own
worksheet, one row per record:

    id | updated_at | deleted | idempotency_key | encrypted_data

Payloads are stored exactly as the outbox produced them, so the sheet
only ever sees ciphertext when the session holds a key. Deletes leave a
tombstone row (deleted=TRUE) so an older upsert replayed later cannot
bring the record back.

TRADEOFFS:
- Every call reads the whole worksheet (we filter in Python); fine for
  a single small business.
- gspread is synchronous; calls block the event loop briefly.
"""

from datetime import datetime
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from bookkeeper.config import GoogleSheetsSettings, get_settings
from bookkeeper.logger import get_logger
from bookkeeper.services.sync.interface import RemoteBackendError, RemoteBackendInterface


logger = get_logger(__name__)

REMOTE_COLUMNS = [
    "id",
    "updated_at",
    "deleted",
    "idempotency_key",
    "encrypted_data",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self._worksheets: dict[str, gspread.Worksheet] = {}

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise RemoteBackendError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except (ValueError, gspread.exceptions.GSpreadException) as e:
                raise RemoteBackendError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise RemoteBackendError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_worksheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet mirroring a collection."""
        title = f"{self._settings.worksheet_prefix}{collection}"
        if title not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                # Create the sheet with headers
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=1000,
                    cols=len(REMOTE_COLUMNS),
                )
                sheet.append_row(REMOTE_COLUMNS)
            self._worksheets[title] = sheet
        return self._worksheets[title]


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value) if value else None
    except ValueError:
        return None


class GoogleSheetsRemoteBackend(RemoteBackendInterface):
    """
    Google Sheets implementation of the remote backend.

    Applies last-write-wins by updated_at and ignores replays of an
    idempotency key already stored on the row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_row(self, sheet: gspread.Worksheet, record_id: str) -> tuple[Optional[int], Optional[list]]:
        """1-based sheet row index and values for a record, if present."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == record_id:
                return idx, row
        return None, None

    def _should_apply(self, existing: list, updated_at: datetime, idempotency_key: str) -> bool:
        def safe_get(index: int) -> str:
            try:
                return existing[index]
            except IndexError:
                return ""

        if safe_get(3) == idempotency_key:
            return False
        held = _parse_timestamp(safe_get(1))
        return held is None or updated_at >= held

    def _write(
        self,
        collection: str,
        record_id: str,
        updated_at: datetime,
        idempotency_key: str,
        deleted: bool,
        payload: str,
    ) -> bool:
        try:
            sheet = self._client.get_worksheet(collection)
            new_row = [
                record_id,
                updated_at.isoformat(),
                "TRUE" if deleted else "FALSE",
                idempotency_key,
                payload,
            ]
            idx, existing = self._find_row(sheet, record_id)

            if existing is None:
                sheet.append_row(new_row, value_input_option="RAW")
                return True

            if not self._should_apply(existing, updated_at, idempotency_key):
                logger.debug(
                    "remote_write_ignored",
                    collection=collection,
                    record_id=record_id,
                )
                return False

            sheet.update(range_name=f"A{idx}:E{idx}", values=[new_row], value_input_option="RAW")
            return True
        except RemoteBackendError:
            raise
        except (gspread.exceptions.GSpreadException, OSError) as e:
            raise RemoteBackendError(f"Failed to write {collection}/{record_id}: {e}") from e

    async def upsert(
        self,
        collection: str,
        record_id: str,
        payload: str,
        updated_at: datetime,
        idempotency_key: str,
    ) -> bool:
        return self._write(collection, record_id, updated_at, idempotency_key, False, payload)

    async def delete(
        self,
        collection: str,
        record_id: str,
        updated_at: datetime,
        idempotency_key: str,
    ) -> bool:
        return self._write(collection, record_id, updated_at, idempotency_key, True, "")

    async def fetch(self, collection: str) -> list[dict[str, Any]]:
        try:
            sheet = self._client.get_worksheet(collection)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except (gspread.exceptions.GSpreadException, OSError) as e:
            raise RemoteBackendError(f"Failed to read {collection}: {e}") from e

        records = []
        for row in all_rows:
            if len(row) < len(REMOTE_COLUMNS) or not row[0]:
                continue
            if row[2].upper() == "TRUE":
                continue
            records.append({
                "id": row[0],
                "updated_at": _parse_timestamp(row[1]),
                "payload": row[4],
            })
        return records
