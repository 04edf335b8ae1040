from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from loguru import logger


Sleep = Callable[[float], Awaitable[None]]


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


class Scheduled(ABC):
    """A background task on the running loop that can be stopped at any time."""

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "Scheduled":
        if self.running:
            return self
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    @abstractmethod
    async def _run(self) -> None:
        ...


class Countdown(Scheduled):
    """Ticks once per interval from ``seconds`` down to 0, then completes."""

    def __init__(
        self,
        seconds: int,
        on_tick: Callable[[int], None],
        on_complete: Callable[[], None],
        interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(sleep)
        self.seconds = seconds
        self.remaining = seconds
        self.on_tick = on_tick
        self.on_complete = on_complete
        self.interval = interval

    async def _run(self) -> None:
        self.remaining = self.seconds
        while True:
            self.on_tick(self.remaining)
            if self.remaining <= 0:
                break
            await self._sleep(self.interval)
            self.remaining -= 1
        self.on_complete()


class Delay(Scheduled):
    """Runs ``callback`` once after ``delay`` seconds unless cancelled first."""

    def __init__(self, delay: float, callback: Callable[[], None], sleep: Sleep = asyncio.sleep) -> None:
        super().__init__(sleep)
        self.delay = delay
        self.callback = callback

    async def _run(self) -> None:
        await self._sleep(self.delay)
        self.callback()


class ScreenScope:
    """Liveness token for one visit to a screen.

    Timers registered here stop scheduling ticks when the screen is left, and
    late provider continuations check ``active`` before touching shared state.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.active = True
        self._timers: List[Scheduled] = []

    def track(self, timer: Scheduled) -> Scheduled:
        """Start ``timer`` and tie its lifetime to this screen."""
        if not self.active:
            raise RuntimeError(f"screen {self.name} is closed")
        self._timers = [t for t in self._timers if t.running]
        self._timers.append(timer.start())
        return timer

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        for timer in self._timers:
            timer.cancel()
        logger.debug(f"screen_closed | name={self.name} timers={len(self._timers)}")
        self._timers = []
