from __future__ import annotations

import asyncio
from typing import Dict, Optional, Sequence

from exam_session.engine.responses import ResponseStore
from exam_session.models import PaletteEntry, ProgressSummary


class NavigationState:
    """Current-question pointer plus the in-memory answer and review state.

    Every mutation is shadowed into the response store. Moving the pointer always issues a
    flush of the question being left before the pointer changes.
    """

    def __init__(
        self,
        question_ids: Sequence[str],
        responses: ResponseStore,
        answers: Optional[Dict[str, int]] = None,
        marked: Optional[Dict[str, bool]] = None,
    ) -> None:
        self.question_ids = list(question_ids)
        self.responses = responses
        self.answers: Dict[str, int] = dict(answers or {})
        self.marked: Dict[str, bool] = dict(marked or {})
        self.current_index = 0

    @property
    def current_question_id(self) -> Optional[str]:
        if not self.question_ids:
            return None
        return self.question_ids[self.current_index]

    def __contains__(self, question_id: str) -> bool:
        return question_id in self.question_ids

    def select_answer(self, question_id: str, option: int) -> asyncio.Task:
        self.answers[question_id] = option
        self.marked[question_id] = False
        return self.responses.save(question_id, option, False)

    def toggle_mark(self, question_id: str) -> asyncio.Task:
        flag = not self.marked.get(question_id, False)
        self.marked[question_id] = flag
        return self.responses.save(question_id, self.answers.get(question_id), flag)

    def flush(self, question_id: Optional[str] = None) -> Optional[asyncio.Task]:
        question_id = question_id or self.current_question_id
        if question_id is None:
            return None
        return self.responses.save(
            question_id, self.answers.get(question_id), self.marked.get(question_id, False)
        )

    def go_to(self, index: int) -> Optional[asyncio.Task]:
        if not 0 <= index < len(self.question_ids):
            raise IndexError(f"question index {index} out of range")
        task = self.flush()
        self.current_index = index
        return task

    def next(self) -> Optional[asyncio.Task]:
        if self.current_index >= len(self.question_ids) - 1:
            return None
        return self.go_to(self.current_index + 1)

    def previous(self) -> Optional[asyncio.Task]:
        if self.current_index <= 0:
            return None
        return self.go_to(self.current_index - 1)

    def state_of(self, index: int) -> str:
        question_id = self.question_ids[index]
        if index == self.current_index:
            return "current"
        if self.marked.get(question_id):
            return "marked"
        if self.answers.get(question_id) is not None:
            return "answered"
        return "unanswered"

    def palette(self) -> list[PaletteEntry]:
        return [
            PaletteEntry(index=i, question_id=qid, state=self.state_of(i))
            for i, qid in enumerate(self.question_ids)
        ]

    def summary(self) -> ProgressSummary:
        total = len(self.question_ids)
        answered = sum(1 for qid in self.question_ids if self.answers.get(qid) is not None)
        marked = sum(1 for qid in self.question_ids if self.marked.get(qid))
        untouched = sum(
            1
            for qid in self.question_ids
            if self.answers.get(qid) is None and not self.marked.get(qid)
        )
        return ProgressSummary(
            total=total,
            answered=answered,
            marked=marked,
            unanswered=untouched,
            progress_percentage=(answered / total) * 100 if total else 0.0,
        )
