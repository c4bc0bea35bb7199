"""
Named periodic timers on top of asyncio tasks.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)

FireHandler = Callable[[str], Awaitable[None]]


class PeriodicTimer:
    """
    Fires a callback with a timer's name every `period_minutes`.

    The first fire happens one full period after scheduling. Each fire runs as its
    own task, so a slow handler never delays the following tick. Scheduling a name
    that is already active replaces the old schedule.
    """

    def __init__(self, on_fire: FireHandler):
        self._on_fire = on_fire
        self._timers: dict[str, asyncio.Task] = {}
        self._periods: dict[str, float] = {}
        self._pending: set[asyncio.Task] = set()

    @property
    def active(self) -> dict[str, float]:
        """Maps each scheduled timer name to its period in minutes."""
        return dict(self._periods)

    def schedule(self, name: str, period_minutes: float) -> None:
        """(Re)schedules the named timer."""
        if period_minutes <= 0:
            raise ValueError("Timer period must be positive.")
        self.cancel(name)
        self._periods[name] = period_minutes
        self._timers[name] = asyncio.create_task(
            self._run(name, period_minutes * 60), name=f"timer:{name}"
        )
        log.debug(f"Timer '{name}' scheduled every {period_minutes:g} min.")

    def cancel(self, name: str) -> bool:
        """Cancels the named timer. Returns False if it was not scheduled."""
        self._periods.pop(name, None)
        task = self._timers.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def close(self) -> None:
        """Cancels every timer and any fire still running."""
        tasks = list(self._timers.values()) + list(self._pending)
        self._timers.clear()
        self._periods.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, name: str, period_seconds: float) -> None:
        while True:
            await asyncio.sleep(period_seconds)
            fire = asyncio.create_task(self._fire(name))
            self._pending.add(fire)
            fire.add_done_callback(self._pending.discard)

    async def _fire(self, name: str) -> None:
        try:
            await self._on_fire(name)
        except Exception:
            log.exception(f"Timer '{name}' handler failed; the timer keeps running.")
