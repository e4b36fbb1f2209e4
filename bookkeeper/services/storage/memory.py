"""In-memory document store, used by tests and as a fallback when no file is available."""

import copy
from typing import Any, Optional

from bookkeeper.services.storage.interface import DocumentStoreInterface


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dict-backed store. Documents are deep-copied in and out."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def put(self, collection: str, record_id: str, document: dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(document)

    async def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        document = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(document) if document is not None else None

    async def delete(self, collection: str, record_id: str) -> bool:
        return self._collections.get(collection, {}).pop(record_id, None) is not None

    async def all(self, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(doc) for doc in self._collections.get(collection, {}).values()]

    async def clear(self, collection: str) -> None:
        self._collections.pop(collection, None)
