import asyncio
import time
from typing import Callable, Iterable, Optional

import pytest

from exam_session.settings import Settings
from exam_session.storage.inmemory import InMemoryDocumentStore

STUDENT = "stu-1"
EXAM = "exam-1"

QUESTIONS = [
    {"id": "q1", "text": "Unit of force?", "options": ["joule", "newton", "watt", "pascal"], "correct_answer": 1},
    {"id": "q2", "text": "Is light a wave?", "options": ["yes", "no"], "correct_answer": 0},
    {"id": "q3", "text": "Pick the vector", "options": ["mass", "time", "velocity"], "correct_answer": 2},
    {"id": "q9", "text": "Belongs to another exam", "options": ["a", "b"], "correct_answer": 0},
]

# relationship fields deliberately use every shape the store may return
_MAPPING_SHAPES = [
    lambda exam, q: {"exam_id": exam, "question_id": q},
    lambda exam, q: {"exam_id": {"$id": exam}, "question_id": {"id": q}},
    lambda exam, q: {"exam_id": [{"$id": exam}], "question_id": [q]},
]


def build_store(
    marks: Iterable[tuple[str, int]] = (("q1", 2), ("q2", 3), ("q3", 5)),
    duration: int = 30,
    status: str = "active",
    attempts: Optional[list[dict]] = None,
    responses: Optional[list[dict]] = None,
    store_class: type = InMemoryDocumentStore,
) -> InMemoryDocumentStore:
    mappings = []
    for order, (question_id, mark) in enumerate(marks, start=1):
        shape = _MAPPING_SHAPES[order % len(_MAPPING_SHAPES)]
        mappings.append({"id": f"m{order}", "order": order, "marks": mark, **shape(EXAM, question_id)})
    # listed out of order on purpose; the session sorts by `order`
    mappings.reverse()
    mappings.append({"id": "m-other", "exam_id": "exam-2", "question_id": "q9", "order": 1, "marks": 4})

    return store_class(
        {
            "exams": [
                {"id": EXAM, "name": "Physics Midterm", "duration": duration, "status": status},
                {"id": "exam-2", "name": "Chemistry", "duration": 10, "status": "active"},
            ],
            "questions": QUESTIONS,
            "exam_questions": mappings,
            "exam_enrollments": [
                {"id": "enr-other", "student_id": "stu-2", "exam_id": EXAM, "status": "enrolled"},
                {"id": "enr-1", "student_id": {"$id": STUDENT}, "exam_id": [EXAM], "status": "enrolled"},
            ],
            "exam_attempts": attempts or [],
            "responses": responses or [],
        }
    )


def docs(store: InMemoryDocumentStore, collection: str) -> list[dict]:
    return list(store.collections.get(collection, {}).values())


def run(coro):
    return asyncio.run(coro)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def config() -> Settings:
    return Settings(
        _env_file=None,
        timer_tick_seconds=0.01,
        snapshot_interval_ticks=0,
        warning_seconds=0.05,
        short_warning_seconds=0.05,
        observability_enabled=False,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return build_store()
