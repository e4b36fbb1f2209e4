"""
SQLite Document Store

The on-device store. All collections share one table:

    documents(seq, collection, id, body, updated_at)

body holds the JSON document. seq preserves insertion order and is kept
when a document is replaced, so list order is stable across updates.
Each put() is a single statement committed on its own, which gives
per-record atomicity and nothing more.
"""

import json
import sqlite3
import threading
from typing import Any, Optional

from bookkeeper.config import get_settings
from bookkeeper.logger import get_logger
from bookkeeper.services.storage.interface import (
    DocumentStoreInterface,
    StorageConnectionError,
    StorageError,
)


logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL,
    updated_at TEXT,
    UNIQUE (collection, id)
);
"""


class SQLiteDocumentStore(DocumentStoreInterface):
    """
    SQLite implementation of the document store.

    One connection is shared for the lifetime of the store; a lock
    serialises access since Streamlit may call in from several threads.
    """

    def __init__(self, database_path: Optional[str] = None):
        self._path = database_path or get_settings().storage.database_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def database_path(self) -> str:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self._path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.executescript(SCHEMA)
                conn.commit()
            except sqlite3.Error as e:
                logger.error("storage_connect_failed", path=self._path, error=str(e))
                raise StorageConnectionError(
                    f"Could not open database {self._path}: {e}"
                ) from e
            self._conn = conn
            logger.debug("storage_connected", path=self._path)
        return self._conn

    def open(self) -> None:
        """Open the database now instead of on first use."""
        with self._lock:
            self._connect()

    def _execute(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(query, params)
                rows = cursor.fetchall()
                conn.commit()
                return rows
            except sqlite3.Error as e:
                conn.rollback()
                logger.error("storage_query_failed", query=query.split()[0], error=str(e))
                raise StorageError(f"Database operation failed: {e}") from e

    async def put(self, collection: str, record_id: str, document: dict[str, Any]) -> None:
        try:
            body = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Document is not JSON serialisable: {e}") from e

        self._execute(
            """
            INSERT INTO documents (collection, id, body, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (collection, id)
            DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
            """,
            (collection, record_id, body, document.get("updated_at")),
        )

    async def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        rows = self._execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            (collection, record_id),
        )
        return json.loads(rows[0]["body"]) if rows else None

    async def delete(self, collection: str, record_id: str) -> bool:
        existed = self._execute(
            "SELECT 1 FROM documents WHERE collection = ? AND id = ?",
            (collection, record_id),
        )
        if not existed:
            return False
        self._execute(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            (collection, record_id),
        )
        return True

    async def all(self, collection: str) -> list[dict[str, Any]]:
        rows = self._execute(
            "SELECT body FROM documents WHERE collection = ? ORDER BY seq",
            (collection,),
        )
        return [json.loads(row["body"]) for row in rows]

    async def clear(self, collection: str) -> None:
        self._execute("DELETE FROM documents WHERE collection = ?", (collection,))

    async def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
