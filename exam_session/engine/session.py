"""Attempt lifecycle for one student taking one exam.

An ``ExamSession`` is opened once per mount of the exam page. Opening resumes the student's
live attempt when there is one, so reloads never create a second attempt for the same
(student, exam). Submission is terminal and runs at most once, whether the student confirms it
or the countdown runs out.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Coroutine, Dict, Optional

from exam_session.engine.navigation import NavigationState
from exam_session.engine.notices import Notices
from exam_session.engine.responses import ResponseStore
from exam_session.engine.scoring import generate_result_id, minutes_between, score_attempt
from exam_session.engine.timer import CountdownTimer, format_time
from exam_session.engine.violations import BrowserEvent, EventSource, ViolationMonitor
from exam_session.errors import (
    InvalidAnswerError,
    SessionClosedError,
    SessionLoadError,
    StoreError,
    SubmissionError,
)
from exam_session.models import (
    Attempt,
    AttemptStatus,
    ExamDefinition,
    ExamQuestionMapping,
    Question,
    QuestionRef,
    QuestionView,
    Result,
    SessionView,
    ViolationCounters,
    ViolationKind,
    utcnow,
)
from exam_session.observability import get_tracer
from exam_session.settings import Settings, settings as default_settings
from exam_session.storage.relations import refers_to
from exam_session.storage.repo import DocumentStore

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load exam data."
NOT_AVAILABLE = "This exam is not currently available."
ALREADY_SUBMITTED = "You have already attempted this exam. Re-attempts are not allowed."
SUBMIT_FAILED = "Failed to submit exam. Please contact support."
NOT_ACCEPTING = "The exam is no longer accepting answers."
NO_QUESTIONS = "No questions found for this exam."


class SessionPhase(str, Enum):
    created = "created"
    ready = "ready"
    submitting = "submitting"
    submitted = "submitted"
    closed = "closed"
    failed = "failed"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class ExamSession:
    def __init__(
        self,
        store: DocumentStore,
        student_id: str,
        exam_id: str,
        *,
        config: Optional[Settings] = None,
        events: Optional[EventSource] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.student_id = student_id
        self.exam_id = exam_id
        self.config = config or default_settings
        self.events = events or EventSource()
        self.clock = clock
        self.notices = Notices(self.config.warning_seconds)

        self.phase = SessionPhase.created
        self.exam: Optional[ExamDefinition] = None
        self.attempt: Optional[Attempt] = None
        self.started_at: Optional[datetime] = None
        self.mappings: list[QuestionRef] = []
        self.questions: Dict[str, Question] = {}
        self.counters = ViolationCounters()

        self.responses: Optional[ResponseStore] = None
        self.navigation: Optional[NavigationState] = None
        self.monitor: Optional[ViolationMonitor] = None
        self.timer: Optional[CountdownTimer] = None

        self.result: Optional[Result] = None
        self.confirm_pending = False
        self._submit_latch = False
        self._settled = asyncio.Event()
        self._ticks = 0
        self._background: set[asyncio.Task] = set()

    @property
    def attempt_id(self) -> Optional[str]:
        return self.attempt.id if self.attempt else None

    @property
    def time_remaining(self) -> int:
        return self.timer.remaining if self.timer else 0

    async def __aenter__(self) -> "ExamSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ===== Mount =====

    async def open(self) -> "ExamSession":
        if self.phase != SessionPhase.created:
            return self
        tracer = get_tracer()
        with tracer.start_as_current_span("session.open") as span:
            span.set_attribute("exam.id", self.exam_id)
            span.set_attribute("student.id", self.student_id)
            try:
                await self._load()
                self.monitor.install()
                self.timer.start()
            except Exception as e:
                self.phase = SessionPhase.failed
                self._teardown()
                message = str(e) if isinstance(e, SessionLoadError) else LOAD_FAILED
                self.notices.fail(message)
                logger.error(f"Fetch exam data error for exam {self.exam_id}: {e}")
                if isinstance(e, SessionLoadError):
                    raise
                raise SessionLoadError(message) from e
            span.set_attribute("attempt.id", self.attempt_id or "")
        self.phase = SessionPhase.ready
        return self

    async def _load(self) -> None:
        cfg = self.config
        exam = ExamDefinition.model_validate(await self.store.get(cfg.exams_collection, self.exam_id))
        if exam.status != "active":
            raise SessionLoadError(NOT_AVAILABLE)
        self.exam = exam

        self.mappings = await self._load_mappings(exam)
        self.questions = await self._load_questions(self.mappings)
        question_ids = [ref.question_id for ref in self.mappings if ref.question_id in self.questions]
        if not question_ids:
            raise SessionLoadError(NO_QUESTIONS)

        self.attempt = await self._resume_or_create_attempt(exam)
        self.counters = self.attempt.counters
        self.started_at = _aware(self.attempt.started_at or self.clock())

        self.responses, answers, marked = await ResponseStore.load(
            self.store,
            cfg.responses_collection,
            self.student_id,
            self.exam_id,
            self.notices,
            limit=cfg.list_limit,
        )
        self.navigation = NavigationState(question_ids, self.responses, answers, marked)

        remaining = self.attempt.remaining_time
        if remaining is None:
            remaining = exam.duration * 60
        self.timer = CountdownTimer(remaining, self._expire, cfg.timer_tick_seconds, self._on_tick)
        self.monitor = ViolationMonitor(
            self.events,
            self.counters,
            self._persist_violation,
            self.notices,
            short_warning_seconds=cfg.short_warning_seconds,
        )

    async def _resume_or_create_attempt(self, exam: ExamDefinition) -> Attempt:
        cfg = self.config
        docs = await self.store.list(cfg.attempts_collection, limit=cfg.list_limit)
        mine = [
            Attempt.model_validate(d)
            for d in docs
            if refers_to(d.get("students_id"), self.student_id) and refers_to(d.get("exams_id"), exam.id)
        ]
        live = [a for a in mine if a.is_live]
        if mine and not live:
            raise SessionLoadError(ALREADY_SUBMITTED)

        now = self.clock()
        if live:
            if len(live) > 1:
                logger.warning(
                    f"{len(live)} live attempts for student {self.student_id} exam {exam.id}; resuming {live[0].id}"
                )
            existing = live[0]
            patch = {
                "status": AttemptStatus.in_progress.value,
                "last_active_timestamp": now.isoformat(),
            }
            if existing.started_at is None:
                patch["started_at"] = now.isoformat()
            doc = await self.store.update(cfg.attempts_collection, existing.id, patch)
            logger.info(f"Student {self.student_id} resumed attempt {existing.id} for exam {exam.id}")
            return Attempt.model_validate(doc)

        doc = await self.store.create(
            cfg.attempts_collection,
            {
                "students_id": self.student_id,
                "exams_id": exam.id,
                "status": AttemptStatus.started.value,
                "started_at": now.isoformat(),
                "last_active_timestamp": now.isoformat(),
                "remaining_time": exam.duration * 60,
                **ViolationCounters().model_dump(),
            },
        )
        attempt = Attempt.model_validate(doc)
        logger.info(f"Student {self.student_id} started exam {exam.id}: attempt {attempt.id}")
        return attempt

    async def _load_mappings(self, exam: ExamDefinition) -> list[QuestionRef]:
        cfg = self.config
        docs = await self.store.list(cfg.exam_questions_collection, order_by="order", limit=cfg.list_limit)
        refs = [
            ExamQuestionMapping.model_validate(d).as_ref()
            for d in docs
            if refers_to(d.get("exam_id"), exam.id)
        ]
        refs = [r for r in refs if r.question_id]
        if not refs:
            refs = list(exam.questions)
        return sorted(refs, key=lambda r: r.order)

    async def _load_questions(self, mappings: list[QuestionRef]) -> Dict[str, Question]:
        if not mappings:
            return {}
        cfg = self.config
        wanted = {ref.question_id for ref in mappings}
        docs = await self.store.list(cfg.questions_collection, limit=cfg.list_limit)
        questions = {}
        for doc in docs:
            question = Question.model_validate(doc)
            if question.id in wanted:
                questions[question.id] = question
        missing = wanted - questions.keys()
        if missing:
            logger.warning(f"Exam {self.exam_id} maps {len(missing)} question(s) missing from the bank")
        return questions

    # ===== Student input =====

    def _require_ready(self) -> None:
        if self.phase != SessionPhase.ready:
            raise SessionClosedError(NOT_ACCEPTING)

    def select_answer(self, question_id: str, option: int) -> asyncio.Task:
        self._require_ready()
        question = self.questions.get(question_id)
        if question is None or question_id not in self.navigation:
            raise InvalidAnswerError(f"question {question_id} is not part of this exam")
        if not 0 <= option < question.option_count:
            raise InvalidAnswerError(f"option {option} out of range for question {question_id}")
        return self.navigation.select_answer(question_id, option)

    def toggle_mark(self, question_id: str) -> asyncio.Task:
        self._require_ready()
        if question_id not in self.navigation:
            raise InvalidAnswerError(f"question {question_id} is not part of this exam")
        return self.navigation.toggle_mark(question_id)

    def go_to(self, index: int) -> Optional[asyncio.Task]:
        self._require_ready()
        try:
            return self.navigation.go_to(index)
        except IndexError as e:
            raise InvalidAnswerError(str(e)) from e

    def next(self) -> Optional[asyncio.Task]:
        self._require_ready()
        return self.navigation.next()

    def previous(self) -> Optional[asyncio.Task]:
        self._require_ready()
        return self.navigation.previous()

    def dispatch(self, event: BrowserEvent) -> BrowserEvent:
        return self.events.dispatch(event)

    # ===== Background telemetry =====

    def _spawn(self, coro: Coroutine, label: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Failed to update {label}: {t.exception()}")

        task.add_done_callback(_done)
        return task

    def _persist_violation(self, kind: ViolationKind, value: int) -> None:
        if self.attempt is None:
            return
        self._spawn(
            self.store.update(self.config.attempts_collection, self.attempt.id, {kind.field: value}),
            f"violation count {kind.field}",
        )

    def _on_tick(self, remaining: int) -> None:
        self._ticks += 1
        interval = self.config.snapshot_interval_ticks
        if interval > 0 and self._ticks % interval == 0 and self.attempt is not None:
            self._spawn(
                self.store.update(
                    self.config.attempts_collection,
                    self.attempt.id,
                    {"remaining_time": remaining, "last_active_timestamp": self.clock().isoformat()},
                ),
                "remaining time",
            )

    async def drain_background(self) -> None:
        if self._background:
            await asyncio.wait(list(self._background))

    # ===== Submission =====

    async def _expire(self) -> None:
        try:
            await self.submit(forced=True)
        except SubmissionError:
            # already surfaced through notices
            pass

    async def submit(self, confirmed: bool = False, forced: bool = False) -> Optional[Result]:
        """Score and submit the attempt.

        A manual submission needs ``confirmed``; without it only the confirmation prompt is
        raised. ``forced`` is the countdown path and skips confirmation. Any call made while a
        submission is in flight, or after it finished, returns without doing anything.
        """
        if self._submit_latch:
            return self.result
        self._require_ready()
        if not forced and not confirmed:
            self.confirm_pending = True
            return None

        self._submit_latch = True
        self.confirm_pending = False
        self.phase = SessionPhase.submitting
        self.timer.cancel()
        # counters are final from here on
        self.monitor.remove()

        cfg = self.config
        tracer = get_tracer()
        with tracer.start_as_current_span("session.submit") as span:
            span.set_attribute("attempt.id", self.attempt.id)
            span.set_attribute("submit.forced", forced)
            try:
                flush = self.navigation.flush()
                if flush is not None:
                    await flush
                await self.responses.drain()

                card = score_attempt(self.navigation.answers, self.mappings, self.questions)
                end = _aware(self.clock())

                doc = await self.store.create(
                    cfg.results_collection,
                    {
                        "result_id": generate_result_id(self.exam_id, self.student_id),
                        "student_id": self.student_id,
                        "exam_id": self.exam_id,
                        "score": card.score,
                        "total_marks": card.total_marks,
                        "percentage": round(card.percentage, 1),
                        "status": card.status.value,
                        "time_taken": minutes_between(self.started_at, end),
                        "attempted_at": self.started_at.isoformat(),
                        "completed_at": end.isoformat(),
                        "created_at": end.isoformat(),
                    },
                )
                self.result = Result.model_validate(doc)

                await self._mark_enrollment_appeared()

                await self.drain_background()
                await self.store.update(
                    cfg.attempts_collection,
                    self.attempt.id,
                    {
                        "status": AttemptStatus.submitted.value,
                        "remaining_time": self.timer.remaining,
                        "last_active_timestamp": end.isoformat(),
                        **self.counters.model_dump(),
                    },
                )
            except Exception as e:
                self.phase = SessionPhase.failed
                self.notices.fail(SUBMIT_FAILED)
                logger.error(f"Submission error for attempt {self.attempt.id}: {e}")
                raise SubmissionError(SUBMIT_FAILED) from e
            finally:
                self._teardown()
                self._settled.set()
            span.set_attribute("result.score", card.score)
            span.set_attribute("result.status", card.status.value)

        self.phase = SessionPhase.submitted
        logger.info(
            f"Student {self.student_id} submitted exam {self.exam_id}: "
            f"{card.score}/{card.total_marks} ({card.status.value})"
        )
        return self.result

    async def _mark_enrollment_appeared(self) -> None:
        cfg = self.config
        docs = await self.store.list(cfg.enrollments_collection, limit=cfg.list_limit)
        for doc in docs:
            if refers_to(doc.get("student_id"), self.student_id) and refers_to(doc.get("exam_id"), self.exam_id):
                await self.store.update(cfg.enrollments_collection, doc["id"], {"status": "appeared"})
                return

    # ===== Unmount =====

    def _teardown(self) -> None:
        if self.monitor is not None:
            self.monitor.remove()
        if self.timer is not None:
            self.timer.cancel()
        self.notices.close()

    async def close(self) -> None:
        """Leave the exam without submitting; the attempt stays resumable."""
        if self.phase == SessionPhase.submitting:
            # an in-flight submission always runs to completion
            await self._settled.wait()
            return
        if self.phase in (SessionPhase.closed, SessionPhase.submitted, SessionPhase.failed):
            self._teardown()
            return
        was_ready = self.phase == SessionPhase.ready
        self._teardown()
        if not was_ready:
            return
        self.phase = SessionPhase.closed
        try:
            flush = self.navigation.flush()
            if flush is not None:
                await asyncio.wait([flush])
            await self.drain_background()
            await self.store.update(
                self.config.attempts_collection,
                self.attempt.id,
                {
                    "remaining_time": self.timer.remaining,
                    "last_active_timestamp": self.clock().isoformat(),
                    **self.counters.model_dump(),
                },
            )
        except StoreError as e:
            logger.warning(f"Could not snapshot attempt {self.attempt.id} on close: {e}")

    # ===== Presentation =====

    def current_question(self) -> Optional[QuestionView]:
        if self.navigation is None or self.navigation.current_question_id is None:
            return None
        question_id = self.navigation.current_question_id
        question = self.questions[question_id]
        marks = next((ref.marks for ref in self.mappings if ref.question_id == question_id), 0)
        options = []
        for i in range(question.option_count):
            options.append(
                {
                    "index": i,
                    "text": question.options[i] if i < len(question.options) else None,
                    "image_id": question.options_image[i] if i < len(question.options_image) else None,
                }
            )
        return QuestionView(
            index=self.navigation.current_index,
            question_id=question_id,
            text=question.text,
            image_id=question.image_id,
            options=options,
            marks=marks,
            selected_option=self.navigation.answers.get(question_id),
            marked_for_review=self.navigation.marked.get(question_id, False),
        )

    def view(self) -> SessionView:
        navigation = self.navigation
        # question content is only shown while the exam can be answered
        showing = self.phase == SessionPhase.ready
        return SessionView(
            attempt_id=self.attempt_id or "",
            exam_id=self.exam_id,
            student_id=self.student_id,
            exam_name=self.exam.name if self.exam else "",
            phase=self.phase.value,
            time_remaining=self.time_remaining,
            time_display=format_time(self.time_remaining),
            current=self.current_question() if showing else None,
            palette=navigation.palette() if navigation and showing else [],
            summary=navigation.summary()
            if navigation
            else {"total": 0, "answered": 0, "marked": 0, "unanswered": 0, "progress_percentage": 0.0},
            counters=self.counters,
            warning=self.notices.warning,
            error=self.notices.error,
            confirm_pending=self.confirm_pending,
            result=self.result,
        )
