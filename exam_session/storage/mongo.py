from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError

from exam_session.errors import RecordNotFound, StoreError, StorePermissionError
from exam_session.storage.repo import Document, DocumentStore

logger = logging.getLogger(__name__)

# Unauthorized / AuthenticationFailed
_PERMISSION_CODES = {13, 18}
_PROJECTION = {"_id": 0}


@contextmanager
def _translate_errors(op: str, collection: str) -> Iterator[None]:
    try:
        yield
    except OperationFailure as e:
        if e.code in _PERMISSION_CODES:
            raise StorePermissionError(f"{op} on {collection} not permitted: {e}") from e
        raise StoreError(f"{op} on {collection} failed: {e}") from e
    except PyMongoError as e:
        raise StoreError(f"{op} on {collection} failed: {e}") from e


class MongoDocumentStore(DocumentStore):
    def __init__(self, mongo_uri: str, db_name: str) -> None:
        self.client = AsyncIOMotorClient(mongo_uri)
        self.db = self.client[db_name]

    async def get(self, collection: str, record_id: str) -> Document:
        with _translate_errors("get", collection):
            doc = await self.db[collection].find_one({"id": record_id}, _PROJECTION)
        if not doc:
            raise RecordNotFound(collection, record_id)
        return doc

    async def list(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: int = 5000,
    ) -> list[Document]:
        with _translate_errors("list", collection):
            cursor = self.db[collection].find(filters or {}, _PROJECTION)
            if order_by:
                cursor = cursor.sort(order_by, ASCENDING)
            return await cursor.limit(limit).to_list(length=limit)

    async def create(self, collection: str, data: Document) -> Document:
        doc = {k: v for k, v in data.items() if k != "id"}
        doc["id"] = uuid4().hex
        doc.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        with _translate_errors("create", collection):
            await self.db[collection].insert_one(dict(doc))
        return doc

    async def update(self, collection: str, record_id: str, data: Document) -> Document:
        patch = {k: v for k, v in data.items() if k != "id"}
        with _translate_errors("update", collection):
            doc = await self.db[collection].find_one_and_update(
                {"id": record_id},
                {"$set": patch},
                projection=_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        if not doc:
            raise RecordNotFound(collection, record_id)
        return doc

    async def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")
