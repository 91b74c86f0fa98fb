"""Diagnostic test clock and date helpers (F3)."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable
from datetime import date, datetime

import structlog

logger = structlog.get_logger(__name__)


def format_time(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def days_until(target: date | datetime | str, now: datetime | None = None) -> int:
    """Whole days left until target, rounded up (negative once passed)."""
    if isinstance(target, str):
        target = datetime.fromisoformat(target)
    if not isinstance(target, datetime):
        target = datetime.combine(target, datetime.min.time())

    if now is None:
        now = datetime.now(target.tzinfo)
    elif target.tzinfo is None and now.tzinfo is not None:
        now = now.replace(tzinfo=None)
    elif target.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=target.tzinfo)

    return math.ceil((target - now).total_seconds() / 86400)


class Countdown:
    """One-second countdown for a running test.

    The ticking task belongs to whoever started it and must be stopped
    when that screen goes away.
    """

    def __init__(
        self,
        total_seconds: int,
        on_complete: Callable[[], None] | None = None,
        tick: float = 1.0,
        on_tick: Callable[[int], None] | None = None,
    ):
        self.remaining = total_seconds
        self.on_complete = on_complete
        self.on_tick = on_tick
        self.tick = tick
        self.completed = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running or self.completed:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick)
            self.remaining -= 1
            if self.on_tick is not None:
                self.on_tick(self.remaining)
        self.completed = True
        logger.info("countdown_completed")
        if self.on_complete is not None:
            self.on_complete()

    async def stop(self) -> None:
        """Cancel the ticking task and wait for it to unwind."""
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    def __str__(self) -> str:
        return format_time(self.remaining)
