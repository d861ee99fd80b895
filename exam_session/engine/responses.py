from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional
from uuid import uuid4

from exam_session.engine.notices import Notices
from exam_session.errors import StorePermissionError
from exam_session.models import Response
from exam_session.storage.relations import resolve_relationship_id
from exam_session.storage.repo import DocumentStore

logger = logging.getLogger(__name__)

PERMISSION_ERROR = (
    "Permission Error: Cannot save answers. Please contact an administrator to check the "
    "'responses' collection permissions."
)


class ResponseStore:
    """Persists one Response per (student, exam, question).

    ``save`` captures the payload when it is called and returns a task. Saves of the same
    question run strictly in call order; saves of different questions do not wait on each other.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        student_id: str,
        exam_id: str,
        notices: Notices,
        existing: Optional[Dict[str, str]] = None,
    ) -> None:
        self.store = store
        self.collection = collection
        self.student_id = student_id
        self.exam_id = exam_id
        self.notices = notices
        self.doc_ids: Dict[str, str] = dict(existing or {})
        self._tails: Dict[str, asyncio.Task] = {}

    @classmethod
    async def load(
        cls,
        store: DocumentStore,
        collection: str,
        student_id: str,
        exam_id: str,
        notices: Notices,
        limit: int = 5000,
    ) -> tuple["ResponseStore", Dict[str, int], Dict[str, bool]]:
        """Hydrate answers and marks from previously saved responses."""
        docs = await store.list(collection, limit=limit)
        answers: Dict[str, int] = {}
        marked: Dict[str, bool] = {}
        doc_ids: Dict[str, str] = {}
        for doc in docs:
            if resolve_relationship_id(doc.get("student_id")) != student_id:
                continue
            if resolve_relationship_id(doc.get("exam_id")) != exam_id:
                continue
            response = Response.model_validate(doc)
            if response.selected_option is not None:
                answers[response.question_id] = response.selected_option
            marked[response.question_id] = response.marked_for_review
            doc_ids[response.question_id] = response.id
        return cls(store, collection, student_id, exam_id, notices, doc_ids), answers, marked

    def save(
        self, question_id: str, selected_option: Optional[int], marked_for_review: bool
    ) -> asyncio.Task:
        data = {
            "student_id": self.student_id,
            "exam_id": self.exam_id,
            "question_id": question_id,
            "marked_for_review": bool(marked_for_review),
            "selected_option": selected_option,
        }
        previous = self._tails.get(question_id)
        task = asyncio.ensure_future(self._write_after(previous, question_id, data))
        self._tails[question_id] = task
        task.add_done_callback(lambda t: self._finished(question_id, t))
        return task

    def pending(self) -> list[asyncio.Task]:
        return [t for t in self._tails.values() if not t.done()]

    async def drain(self) -> None:
        tasks = self.pending()
        if tasks:
            await asyncio.wait(tasks)

    async def _write_after(
        self, previous: Optional[asyncio.Task], question_id: str, data: dict
    ) -> Optional[Response]:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        doc_id = self.doc_ids.get(question_id)
        if doc_id:
            doc = await self.store.update(self.collection, doc_id, data)
            return Response.model_validate(doc)
        if data["selected_option"] is None and not data["marked_for_review"]:
            return None
        doc = await self.store.create(self.collection, {**data, "response_id": uuid4().hex})
        response = Response.model_validate(doc)
        self.doc_ids[question_id] = response.id
        return response

    def _finished(self, question_id: str, task: asyncio.Task) -> None:
        if self._tails.get(question_id) is task:
            del self._tails[question_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, StorePermissionError):
            self.notices.fail(PERMISSION_ERROR)
        else:
            logger.error(f"Failed to save response for question {question_id}: {exc}")
