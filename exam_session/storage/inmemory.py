from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from exam_session.errors import RecordNotFound
from exam_session.storage.repo import Document, DocumentStore


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts last; mixed types never compare against each other
    if value is None:
        return (2, "")
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, seed: Optional[Dict[str, list[Document]]] = None) -> None:
        self.collections: Dict[str, Dict[str, Document]] = {}
        for collection, docs in (seed or {}).items():
            for doc in docs:
                self.insert(collection, doc)

    def _collection(self, collection: str) -> Dict[str, Document]:
        return self.collections.setdefault(collection, {})

    def insert(self, collection: str, doc: Document) -> Document:
        """Synchronous insert used for seeding; keeps a caller supplied id."""
        stored = copy.deepcopy(doc)
        stored.setdefault("id", uuid4().hex)
        self._collection(collection)[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def get(self, collection: str, record_id: str) -> Document:
        doc = self._collection(collection).get(record_id)
        if doc is None:
            raise RecordNotFound(collection, record_id)
        return copy.deepcopy(doc)

    async def list(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: int = 5000,
    ) -> list[Document]:
        docs = [
            d
            for d in self._collection(collection).values()
            if all(d.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            docs.sort(key=lambda d: _sort_key(d.get(order_by)))
        return [copy.deepcopy(d) for d in docs[:limit]]

    async def create(self, collection: str, data: Document) -> Document:
        doc = {k: v for k, v in data.items() if k != "id"}
        doc["id"] = uuid4().hex
        doc["created_at"] = doc.get("created_at") or datetime.now(timezone.utc).isoformat()
        return self.insert(collection, doc)

    async def update(self, collection: str, record_id: str, data: Document) -> Document:
        docs = self._collection(collection)
        if record_id not in docs:
            raise RecordNotFound(collection, record_id)
        docs[record_id].update(copy.deepcopy({k: v for k, v in data.items() if k != "id"}))
        return copy.deepcopy(docs[record_id])
