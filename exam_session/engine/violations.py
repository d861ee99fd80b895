"""Integrity monitoring for a running exam.

Browser events reach the engine through an ``EventSource``. The ``ViolationMonitor`` is the only
subscriber that matters for integrity: it counts tab switches, fullscreen exits and clipboard use,
and suppresses the context menu and inspection-tool shortcuts without counting them.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from exam_session.engine.notices import Notices
from exam_session.models import ViolationCounters, ViolationKind

logger = logging.getLogger(__name__)


class BrowserEvent(BaseModel):
    type: str
    hidden: bool = False
    fullscreen: bool = True
    key: Optional[str] = None
    ctrl: bool = False
    shift: bool = False
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


Listener = Callable[[BrowserEvent], None]


class EventSource:
    """In-process stand-in for the document's event target."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def add_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(v) for v in self._listeners.values())

    def dispatch(self, event: BrowserEvent) -> BrowserEvent:
        for listener in list(self._listeners.get(event.type, [])):
            listener(event)
        return event


# (key, ctrl, shift)
INSPECTION_SHORTCUTS = {
    ("F12", False, False),
    ("I", True, True),
    ("J", True, True),
    ("C", True, True),
    ("U", True, False),
}

TAB_SWITCH_WARNING = "Warning: Switching tabs is not allowed during the exam!"
FULLSCREEN_WARNING = "Warning: Please remain in fullscreen mode during the exam!"
CLIPBOARD_WARNING = "Warning: Copy-paste is disabled during the exam!"
DEVTOOLS_WARNING = "Warning: Developer tools are disabled during the exam!"


class ViolationMonitor:
    def __init__(
        self,
        source: EventSource,
        counters: ViolationCounters,
        on_violation: Callable[[ViolationKind, int], None],
        notices: Notices,
        short_warning_seconds: float = 3.0,
    ) -> None:
        self.source = source
        self.counters = counters
        self.on_violation = on_violation
        self.notices = notices
        self.short_warning_seconds = short_warning_seconds
        self._installed: list[tuple[str, Listener]] = []

    @property
    def installed(self) -> bool:
        return bool(self._installed)

    def install(self) -> None:
        if self._installed:
            return
        self._installed = [
            ("visibilitychange", self._on_visibility_change),
            ("fullscreenchange", self._on_fullscreen_change),
            ("copy", self._on_clipboard),
            ("cut", self._on_clipboard),
            ("paste", self._on_clipboard),
            ("contextmenu", self._on_context_menu),
            ("keydown", self._on_keydown),
        ]
        for event_type, listener in self._installed:
            self.source.add_listener(event_type, listener)
        logger.debug("violation listeners installed")

    def remove(self) -> None:
        for event_type, listener in self._installed:
            self.source.remove_listener(event_type, listener)
        if self._installed:
            logger.debug("violation listeners removed")
        self._installed = []

    def __enter__(self) -> "ViolationMonitor":
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.remove()

    def _record(self, kind: ViolationKind) -> None:
        value = self.counters.bump(kind)
        logger.info(f"violation {kind.value} -> {value}")
        self.on_violation(kind, value)

    def _on_visibility_change(self, event: BrowserEvent) -> None:
        if event.hidden:
            self._record(ViolationKind.tab_switch)
            self.notices.warn(TAB_SWITCH_WARNING)

    def _on_fullscreen_change(self, event: BrowserEvent) -> None:
        if not event.fullscreen:
            self._record(ViolationKind.fullscreen_exit)
            self.notices.warn(FULLSCREEN_WARNING)

    def _on_clipboard(self, event: BrowserEvent) -> None:
        event.prevent_default()
        self._record(ViolationKind.copy_paste)
        self.notices.warn(CLIPBOARD_WARNING, self.short_warning_seconds)

    def _on_context_menu(self, event: BrowserEvent) -> None:
        event.prevent_default()

    def _on_keydown(self, event: BrowserEvent) -> None:
        key = (event.key or "").upper()
        if (key, event.ctrl, event.shift) in INSPECTION_SHORTCUTS:
            event.prevent_default()
            self.notices.warn(DEVTOOLS_WARNING, self.short_warning_seconds)
