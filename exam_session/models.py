from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from exam_session.storage.relations import resolve_relationship_id

RelationId = Annotated[str, BeforeValidator(resolve_relationship_id)]
OptionalRelationId = Annotated[Optional[str], BeforeValidator(resolve_relationship_id)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """Base for documents read back from the store; unknown fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(default="", validation_alias="$id")


class AttemptStatus(str, Enum):
    started = "started"
    in_progress = "in_progress"
    submitted = "submitted"


class ResultStatus(str, Enum):
    passed = "passed"
    failed = "failed"


class ViolationKind(str, Enum):
    tab_switch = "tab_switch"
    fullscreen_exit = "fullscreen_exit"
    copy_paste = "copy_paste"

    @property
    def field(self) -> str:
        return _VIOLATION_FIELDS[self]


_VIOLATION_FIELDS = {
    ViolationKind.tab_switch: "tab_switch_count",
    ViolationKind.fullscreen_exit: "full_screen_exit_count",
    ViolationKind.copy_paste: "copy_paste_events",
}


class QuestionRef(BaseModel):
    question_id: RelationId
    order: int = 0
    marks: int = Field(default=0, ge=0)


class ExamDefinition(Record):
    name: str = ""
    duration: int = Field(ge=0, description="minutes")
    status: str = "active"
    questions: list[QuestionRef] = Field(default_factory=list)


class ExamQuestionMapping(Record):
    """Row of the exam-question collection; owned by exam authoring."""

    exam_id: OptionalRelationId = None
    question_id: OptionalRelationId = None
    order: int = 0
    marks: int = Field(default=0, ge=0)

    def as_ref(self) -> QuestionRef:
        return QuestionRef(question_id=self.question_id or "", order=self.order, marks=self.marks)


class Question(Record):
    text: Optional[str] = None
    image_id: Optional[str] = None
    options: list[str] = Field(default_factory=list)
    options_image: list[Optional[str]] = Field(default_factory=list)
    correct_answer: Optional[int] = None
    difficulty: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    @property
    def option_count(self) -> int:
        return max(len(self.options), len(self.options_image))

    @model_validator(mode="after")
    def _check_options(self) -> "Question":
        if not 2 <= self.option_count <= 4:
            raise ValueError(f"question {self.id} must have 2-4 options, has {self.option_count}")
        return self


class ViolationCounters(BaseModel):
    tab_switch_count: int = Field(default=0, ge=0)
    full_screen_exit_count: int = Field(default=0, ge=0)
    copy_paste_events: int = Field(default=0, ge=0)

    def get(self, kind: ViolationKind) -> int:
        return getattr(self, kind.field)

    def bump(self, kind: ViolationKind) -> int:
        value = self.get(kind) + 1
        setattr(self, kind.field, value)
        return value


class Attempt(Record):
    students_id: RelationId
    exams_id: RelationId
    status: AttemptStatus = AttemptStatus.started
    started_at: Optional[datetime] = None
    last_active_timestamp: Optional[datetime] = None
    remaining_time: Optional[int] = Field(default=None, ge=0)

    tab_switch_count: int = 0
    full_screen_exit_count: int = 0
    copy_paste_events: int = 0

    @property
    def counters(self) -> ViolationCounters:
        return ViolationCounters(
            tab_switch_count=self.tab_switch_count or 0,
            full_screen_exit_count=self.full_screen_exit_count or 0,
            copy_paste_events=self.copy_paste_events or 0,
        )

    @property
    def is_live(self) -> bool:
        return self.status != AttemptStatus.submitted


class Response(Record):
    response_id: Optional[str] = None
    student_id: RelationId
    exam_id: RelationId
    question_id: RelationId
    selected_option: Optional[int] = None
    marked_for_review: bool = False


class Result(Record):
    result_id: str
    student_id: RelationId
    exam_id: RelationId
    score: int
    total_marks: int
    percentage: float
    status: ResultStatus
    time_taken: int
    attempted_at: datetime
    completed_at: datetime
    created_at: datetime


class Enrollment(Record):
    student_id: OptionalRelationId = None
    exam_id: OptionalRelationId = None
    status: Optional[str] = None


# ===== HTTP DTOs =====


class OpenSessionRequest(BaseModel):
    student_id: str
    exam_id: str


class AnswerRequest(BaseModel):
    question_id: str
    option: int = Field(ge=0)


class MarkRequest(BaseModel):
    question_id: str


class NavigateRequest(BaseModel):
    index: Optional[int] = None
    direction: Optional[Literal["next", "previous"]] = None

    @model_validator(mode="after")
    def _one_target(self) -> "NavigateRequest":
        if (self.index is None) == (self.direction is None):
            raise ValueError("provide either index or direction")
        return self


class SubmitRequest(BaseModel):
    confirmed: bool = False


class BrowserEventResponse(BaseModel):
    default_prevented: bool


class QuestionView(BaseModel):
    index: int
    question_id: str
    text: Optional[str] = None
    image_id: Optional[str] = None
    options: list[dict[str, Any]] = Field(default_factory=list)
    marks: int = 0
    selected_option: Optional[int] = None
    marked_for_review: bool = False


class PaletteEntry(BaseModel):
    index: int
    question_id: str
    state: Literal["unanswered", "answered", "marked", "current"]


class ProgressSummary(BaseModel):
    total: int
    answered: int
    marked: int
    unanswered: int
    progress_percentage: float


class SessionView(BaseModel):
    attempt_id: str
    exam_id: str
    student_id: str
    exam_name: str
    phase: str
    time_remaining: int
    time_display: str
    current: Optional[QuestionView] = None
    palette: list[PaletteEntry] = Field(default_factory=list)
    summary: ProgressSummary
    counters: ViolationCounters
    warning: Optional[str] = None
    error: Optional[str] = None
    confirm_pending: bool = False
    result: Optional[Result] = None
