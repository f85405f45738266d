"""
Cancellable timers for transient UI state.
"""
from typing import Callable, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)


class TransientSlot:
    """
    A delayed callback bound to one piece of transient state.

    Scheduling again cancels the pending callback. Every schedule bumps a
    generation counter and the callback only runs if its generation is
    still current, so a stale timer never acts on newer state.
    """

    def __init__(self, name: str = "transient"):
        self.name = name
        self.generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay: float, callback: Callable[[], None]) -> int:
        """
        Run `callback` after `delay` seconds unless superseded.

        Must be called from within a running event loop.

        Returns:
            The generation token of this schedule
        """
        self.cancel()
        self.generation += 1
        token = self.generation
        self._task = asyncio.get_running_loop().create_task(self._fire(delay, token, callback))
        return token

    async def _fire(self, delay: float, token: int, callback: Callable[[], None]) -> None:
        await asyncio.sleep(delay)
        if token != self.generation:
            logger.debug(f"Skipping stale {self.name} timer {token} (current {self.generation})")
            return
        self._task = None
        callback()

    def cancel(self) -> None:
        """Cancel the pending callback and invalidate its generation."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.generation += 1


class TimerGroup:
    """Independent one-shot timers that can be cancelled together."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, delay: float, callback: Callable[[], None]) -> asyncio.Task:
        async def fire():
            await asyncio.sleep(delay)
            callback()

        task = asyncio.get_running_loop().create_task(fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
