"""
Tests for the Google Sheets remote backend.

A fake worksheet replaces gspread so no network calls are made.
"""

import pytest

import gspread
from tenacity import wait_none

from bookkeeper.config import GoogleSheetsSettings
from bookkeeper.services.remote import REMOTE_COLUMNS, GoogleSheetsClient, GoogleSheetsRemoteBackend
from bookkeeper.services.sync import RemoteBackendError

from conftest import utc


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the backend."""

    def __init__(self):
        self.rows = [list(REMOTE_COLUMNS)]
        self.fail = False

    def _check(self):
        if self.fail:
            raise gspread.exceptions.GSpreadException("quota exceeded")

    def get_all_values(self):
        self._check()
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option="RAW"):
        self._check()
        self.rows.append(list(values))

    def update(self, range_name=None, values=None, value_input_option=None):
        self._check()
        row_number = int(range_name.split(":")[0][1:])
        self.rows[row_number - 1] = list(values[0])


class FakeClient:
    def __init__(self):
        self.sheets: dict[str, FakeWorksheet] = {}

    def get_worksheet(self, collection):
        return self.sheets.setdefault(collection, FakeWorksheet())


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def backend(client):
    return GoogleSheetsRemoteBackend(client=client)


class TestUpsert:
    """Row creation and replacement."""

    @pytest.mark.asyncio
    async def test_new_record_appended(self, backend, client):
        applied = await backend.upsert("transactions", "r1", "cipher", utc(2024, 1, 1), "k1")

        assert applied
        rows = client.sheets["transactions"].rows
        assert rows[1] == ["r1", utc(2024, 1, 1).isoformat(), "FALSE", "k1", "cipher"]

    @pytest.mark.asyncio
    async def test_newer_write_replaces_row(self, backend, client):
        await backend.upsert("transactions", "r1", "old", utc(2024, 1, 1), "k1")
        await backend.upsert("transactions", "r2", "other", utc(2024, 1, 1), "k2")

        assert await backend.upsert("transactions", "r1", "new", utc(2024, 1, 2), "k3")

        rows = client.sheets["transactions"].rows
        assert len(rows) == 3
        assert rows[1][4] == "new"
        assert rows[2][4] == "other"

    @pytest.mark.asyncio
    async def test_older_write_ignored(self, backend, client):
        await backend.upsert("transactions", "r1", "new", utc(2024, 1, 2), "k1")

        assert not await backend.upsert("transactions", "r1", "old", utc(2024, 1, 1), "k2")
        assert client.sheets["transactions"].rows[1][4] == "new"

    @pytest.mark.asyncio
    async def test_same_idempotency_key_ignored(self, backend):
        await backend.upsert("transactions", "r1", "p", utc(2024, 1, 1), "k1")
        assert not await backend.upsert("transactions", "r1", "p", utc(2024, 1, 3), "k1")

    @pytest.mark.asyncio
    async def test_equal_timestamp_applies(self, backend, client):
        await backend.upsert("transactions", "r1", "a", utc(2024, 1, 1), "k1")
        assert await backend.upsert("transactions", "r1", "b", utc(2024, 1, 1), "k2")
        assert client.sheets["transactions"].rows[1][4] == "b"


class TestDeleteAndFetch:
    """Tombstones and reads."""

    @pytest.mark.asyncio
    async def test_delete_leaves_tombstone(self, backend, client):
        await backend.upsert("bills", "b1", "p", utc(2024, 1, 1), "k1")

        assert await backend.delete("bills", "b1", utc(2024, 1, 2), "k2")

        row = client.sheets["bills"].rows[1]
        assert row[2] == "TRUE"
        assert row[4] == ""
        assert await backend.fetch("bills") == []

    @pytest.mark.asyncio
    async def test_tombstone_wins_over_stale_upsert(self, backend):
        await backend.delete("bills", "b1", utc(2024, 1, 2), "k1")
        assert not await backend.upsert("bills", "b1", "p", utc(2024, 1, 1), "k2")
        assert await backend.fetch("bills") == []

    @pytest.mark.asyncio
    async def test_fetch_skips_malformed_rows(self, backend, client):
        await backend.upsert("products", "p1", "payload", utc(2024, 1, 1), "k1")
        client.sheets["products"].rows.append(["", "", "", "", ""])
        client.sheets["products"].rows.append(["short"])

        records = await backend.fetch("products")

        assert records == [{"id": "p1", "updated_at": utc(2024, 1, 1), "payload": "payload"}]


class TestErrors:
    """gspread failures surface as RemoteBackendError."""

    @pytest.mark.asyncio
    async def test_write_failure(self, backend, client):
        client.get_worksheet("transactions").fail = True
        with pytest.raises(RemoteBackendError, match="quota exceeded"):
            await backend.upsert("transactions", "r1", "p", utc(2024, 1, 1), "k1")

    @pytest.mark.asyncio
    async def test_fetch_failure(self, backend, client):
        client.get_worksheet("transactions").fail = True
        with pytest.raises(RemoteBackendError):
            await backend.fetch("transactions")

    def test_missing_credentials_file(self, tmp_path):
        """Test that a missing service account file fails after retries."""
        settings = GoogleSheetsSettings(
            credentials_path=str(tmp_path / "nope.json"),
            spreadsheet_id="sheet",
        )
        sheets_client = GoogleSheetsClient(settings)
        connect = GoogleSheetsClient.connect.retry_with(wait=wait_none())

        with pytest.raises(RemoteBackendError, match="not found"):
            connect(sheets_client)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
