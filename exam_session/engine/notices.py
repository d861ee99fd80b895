from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class Notices:
    """Student-facing messages: one transient warning banner and one persistent error."""

    def __init__(self, warning_seconds: float = 5.0) -> None:
        self.warning_seconds = warning_seconds
        self.warning: Optional[str] = None
        self.error: Optional[str] = None
        self._dismiss: Optional[asyncio.TimerHandle] = None

    def warn(self, message: str, seconds: Optional[float] = None) -> None:
        self.warning = message
        if self._dismiss is not None:
            self._dismiss.cancel()
            self._dismiss = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._dismiss = loop.call_later(
            self.warning_seconds if seconds is None else seconds, self._clear_warning
        )

    def fail(self, message: str) -> None:
        if self.error != message:
            logger.error(message)
        self.error = message

    def _clear_warning(self) -> None:
        self.warning = None
        self._dismiss = None

    def close(self) -> None:
        if self._dismiss is not None:
            self._dismiss.cancel()
            self._dismiss = None
        self.warning = None
