from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Dict, Optional

from exam_session.engine.session import ExamSession, SessionPhase
from exam_session.errors import RecordNotFound
from exam_session.settings import Settings, settings
from exam_session.storage.inmemory import InMemoryDocumentStore
from exam_session.storage.mongo import MongoDocumentStore
from exam_session.storage.repo import DocumentStore

logger = logging.getLogger(__name__)


@lru_cache
def get_store() -> DocumentStore:
    backend = (settings.storage_backend or "inmemory").lower()
    if backend == "mongo":
        return MongoDocumentStore(settings.mongodb_uri, settings.mongodb_db)
    return InMemoryDocumentStore()


class SessionRegistry:
    """Live sessions of this process, one per (student, exam)."""

    def __init__(self, store: DocumentStore, config: Optional[Settings] = None) -> None:
        self.store = store
        self.config = config or settings
        self._by_pair: Dict[tuple[str, str], ExamSession] = {}
        self._by_attempt: Dict[str, ExamSession] = {}
        self._lock = asyncio.Lock()

    async def open(self, student_id: str, exam_id: str) -> ExamSession:
        async with self._lock:
            self._prune()
            session = self._by_pair.get((student_id, exam_id))
            if session is not None and session.phase == SessionPhase.ready:
                return session
            session = ExamSession(self.store, student_id, exam_id, config=self.config)
            await session.open()
            self._by_pair[(student_id, exam_id)] = session
            self._by_attempt[session.attempt_id] = session
            return session

    def _forget(self, session: ExamSession) -> None:
        self._by_attempt.pop(session.attempt_id, None)
        if self._by_pair.get((session.student_id, session.exam_id)) is session:
            del self._by_pair[(session.student_id, session.exam_id)]

    def _prune(self) -> None:
        # finished sessions stay readable until the next open
        for session in list(self._by_attempt.values()):
            if session.phase in (SessionPhase.submitted, SessionPhase.failed, SessionPhase.closed):
                self._forget(session)

    def get(self, attempt_id: str) -> ExamSession:
        session = self._by_attempt.get(attempt_id)
        if session is None:
            raise RecordNotFound("sessions", attempt_id)
        return session

    async def close(self, attempt_id: str) -> ExamSession:
        session = self.get(attempt_id)
        await session.close()
        self._forget(session)
        return session

    async def close_all(self) -> None:
        for attempt_id in list(self._by_attempt):
            await self.close(attempt_id)


@lru_cache
def get_registry() -> SessionRegistry:
    return SessionRegistry(get_store())
