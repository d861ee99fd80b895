from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

Document = dict[str, Any]


class DocumentStore(ABC):
    """Generic remote document store, one logical collection per record type.

    Filters are plain equality matches on top-level fields. Relationship fields may come back
    as an id, an embedded record or a list, so callers match them after a broad ``list``.
    """

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Document:
        raise NotImplementedError

    @abstractmethod
    async def list(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: int = 5000,
    ) -> list[Document]:
        raise NotImplementedError

    @abstractmethod
    async def create(self, collection: str, data: Document) -> Document:
        raise NotImplementedError

    @abstractmethod
    async def update(self, collection: str, record_id: str, data: Document) -> Document:
        raise NotImplementedError

    async def close(self) -> None:
        return None
