from __future__ import annotations

import math
import random
import string
import time
from datetime import datetime
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel

from exam_session.models import Question, QuestionRef, ResultStatus

# Policy constant, not derived from the exam.
PASS_PERCENTAGE = 30.0

_BASE36 = string.digits + string.ascii_lowercase


class ScoreCard(BaseModel):
    score: int
    total_marks: int
    percentage: float
    status: ResultStatus


def score_attempt(
    answers: Mapping[str, Optional[int]],
    mappings: Sequence[QuestionRef],
    questions: Mapping[str, Question],
) -> ScoreCard:
    """Score the final answers against the exam's question mappings.

    Every mapped question counts towards the total. A question earns its marks only when the
    answer equals its correct option; unanswered, wrong, unknown or unkeyed questions earn 0.
    """
    score = 0
    total_marks = 0
    for ref in mappings:
        total_marks += ref.marks
        question = questions.get(ref.question_id)
        if question is None or question.correct_answer is None:
            continue
        answer = answers.get(ref.question_id)
        if answer is not None and answer == question.correct_answer:
            score += ref.marks

    percentage = score * 100 / total_marks if total_marks > 0 else 0.0
    status = ResultStatus.passed if percentage >= PASS_PERCENTAGE else ResultStatus.failed
    return ScoreCard(score=score, total_marks=total_marks, percentage=percentage, status=status)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded up."""
    minutes = (end - start).total_seconds() / 60
    return max(0, math.floor(minutes + 0.5))


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_result_id(exam_id: str, student_id: str) -> str:
    stamp = _base36(int(time.time() * 1000))[:6]
    suffix = "".join(random.choice(_BASE36) for _ in range(4))
    return f"res_{exam_id[:10]}_{student_id[:10]}_{stamp}_{suffix}"[:36]
