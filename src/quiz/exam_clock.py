"""
Exam Clock: one-second countdown driver.

The clock owns no time budget itself. It calls ``on_tick`` once per
interval on the running event loop; the session decrements its
remaining seconds and submits at zero, which cancels the clock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger


def format_clock(seconds: int) -> str:
    """Format remaining seconds as m:ss."""
    seconds = max(0, int(seconds))
    minutes, sec = divmod(seconds, 60)
    return f"{minutes}:{sec:02d}"


class ExamClock:
    """
    Periodic ticker running as an asyncio task.

    Args:
        on_tick: Called once per interval
        interval: Seconds between ticks
    """

    def __init__(self, on_tick: Callable[[], object], interval: float = 1.0):
        self.on_tick = on_tick
        self.interval = interval
        self._task: asyncio.Task | None = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def start(self) -> None:
        """
        Start ticking on the running event loop.

        Raises:
            RuntimeError: If called outside a running event loop
        """
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._cancelled = False
        self._task = loop.create_task(self._run())
        logger.debug(f"Exam clock started ({self.interval}s ticks)")

    def cancel(self) -> None:
        """Stop ticking. Safe to call from inside ``on_tick``."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            if self._task is not asyncio.current_task():
                self._task.cancel()
        logger.debug("Exam clock cancelled")

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            if self._cancelled:
                break
            try:
                self.on_tick()
            except Exception:
                logger.exception("Exam clock tick failed")
