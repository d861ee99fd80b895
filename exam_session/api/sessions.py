from __future__ import annotations

from fastapi import APIRouter, Depends

from exam_session.engine.violations import BrowserEvent
from exam_session.models import (
    AnswerRequest,
    BrowserEventResponse,
    MarkRequest,
    NavigateRequest,
    OpenSessionRequest,
    SessionView,
    SubmitRequest,
)
from exam_session.wiring import SessionRegistry, get_registry

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionView)
async def open_session(req: OpenSessionRequest, registry: SessionRegistry = Depends(get_registry)) -> SessionView:
    session = await registry.open(req.student_id, req.exam_id)
    return session.view()


@router.get("/{attempt_id}", response_model=SessionView)
async def get_session(attempt_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionView:
    return registry.get(attempt_id).view()


@router.post("/{attempt_id}/answer", response_model=SessionView)
async def answer(
    attempt_id: str, req: AnswerRequest, registry: SessionRegistry = Depends(get_registry)
) -> SessionView:
    session = registry.get(attempt_id)
    session.select_answer(req.question_id, req.option)
    return session.view()


@router.post("/{attempt_id}/mark", response_model=SessionView)
async def mark_for_review(
    attempt_id: str, req: MarkRequest, registry: SessionRegistry = Depends(get_registry)
) -> SessionView:
    session = registry.get(attempt_id)
    session.toggle_mark(req.question_id)
    return session.view()


@router.post("/{attempt_id}/navigate", response_model=SessionView)
async def navigate(
    attempt_id: str, req: NavigateRequest, registry: SessionRegistry = Depends(get_registry)
) -> SessionView:
    session = registry.get(attempt_id)
    if req.direction == "next":
        session.next()
    elif req.direction == "previous":
        session.previous()
    else:
        session.go_to(req.index)
    return session.view()


@router.post("/{attempt_id}/events", response_model=BrowserEventResponse)
async def browser_event(
    attempt_id: str, event: BrowserEvent, registry: SessionRegistry = Depends(get_registry)
) -> BrowserEventResponse:
    dispatched = registry.get(attempt_id).dispatch(event)
    return BrowserEventResponse(default_prevented=dispatched.default_prevented)


@router.post("/{attempt_id}/submit", response_model=SessionView)
async def submit(
    attempt_id: str, req: SubmitRequest, registry: SessionRegistry = Depends(get_registry)
) -> SessionView:
    session = registry.get(attempt_id)
    await session.submit(confirmed=req.confirmed)
    return session.view()


@router.delete("/{attempt_id}", response_model=SessionView)
async def close_session(attempt_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionView:
    session = await registry.close(attempt_id)
    return session.view()
