from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class CountdownTimer:
    """Whole-second countdown that runs ``on_expire`` once when it reaches zero."""

    def __init__(
        self,
        remaining: int,
        on_expire: Callable[[], Awaitable[object]],
        tick_seconds: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._remaining = max(0, int(remaining))
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.tick_seconds = tick_seconds
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self._expiring = False

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def start(self) -> None:
        if self._task is not None or self._cancelled:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        self._cancelled = True
        task = self._task
        # expiry runs inside the timer task; never cancel the submission it started
        if self._expiring:
            return
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while self._remaining > 0:
            await asyncio.sleep(self.tick_seconds)
            if self._cancelled:
                return
            self._remaining -= 1
            if self.on_tick is not None:
                self.on_tick(self._remaining)
        if self._cancelled:
            return
        logger.info("countdown reached zero, forcing submission")
        self._expiring = True
        await self.on_expire()
