from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from .achievements import BREATHING_COMPLETED, VENT_SENT, AchievementEngine, TriggerEvent
from .states import EventSink, emit
from .timers import Countdown, ScreenScope, Sleep, Scheduled, format_clock


PHASE_SECONDS = 4.0
EXERCISE_SECONDS = 60

_NEXT_PHASE = {"ready": "in", "in": "hold", "hold": "out", "out": "in"}
_INSTRUCTIONS = {"in": "Breathe In...", "hold": "Hold", "out": "Breathe Out..."}


class _PhaseCycle(Scheduled):
    def __init__(self, exercise: "BreathingExercise", sleep: Sleep) -> None:
        super().__init__(sleep)
        self.exercise = exercise

    async def _run(self) -> None:
        while True:
            await self._sleep(self.exercise.phase_seconds)
            self.exercise._advance()


class BreathingExercise:
    """Box breathing: in, hold, out every few seconds beside a one-minute countdown.

    Both clocks run on the owning screen's scope, so leaving the screen stops
    them; finishing the countdown fires the breathing achievement once.
    """

    def __init__(
        self,
        scope: ScreenScope,
        engine: AchievementEngine,
        on_event: Optional[EventSink] = None,
        phase_seconds: float = PHASE_SECONDS,
        duration: int = EXERCISE_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.scope = scope
        self.engine = engine
        self.on_event = on_event
        self.phase_seconds = phase_seconds
        self.duration = duration
        self._sleep = sleep
        self.phase = "ready"
        self.full_breaths = 0
        self.completed = False
        self.countdown: Optional[Countdown] = None
        self._cycle: Optional[_PhaseCycle] = None

    def start(self) -> bool:
        """Begin from ``ready``; taps while a cycle is running are ignored."""
        if self.phase != "ready" or not self.scope.active:
            return False
        self._advance()
        self._cycle = _PhaseCycle(self, self._sleep)
        self.scope.track(self._cycle)
        self.countdown = Countdown(self.duration, self._tick, self._finish, sleep=self._sleep)
        self.scope.track(self.countdown)
        logger.info(f"breathing_start | duration={self.duration}s phase={self.phase_seconds}s")
        return True

    def _advance(self) -> None:
        if self.phase == "out":
            self.full_breaths += 1
        self.phase = _NEXT_PHASE[self.phase]
        instruction = _INSTRUCTIONS[self.phase]
        if self.phase == "in" and self.full_breaths:
            instruction = f"{instruction} ({self.full_breaths + 1})"
        emit(
            self.on_event,
            "breathing_phase",
            {"phase": self.phase, "instruction": instruction, "full_breaths": self.full_breaths},
        )

    def _tick(self, remaining: int) -> None:
        emit(self.on_event, "breathing_tick", {"remaining": remaining, "clock": format_clock(remaining)})

    def _finish(self) -> None:
        if self._cycle is not None:
            self._cycle.cancel()
        if not self.scope.active:
            return
        self.completed = True
        logger.info(f"breathing_done | full_breaths={self.full_breaths}")
        emit(self.on_event, "breathing_done", {"message": "Great job!", "full_breaths": self.full_breaths})
        self.engine.evaluate(TriggerEvent(kind=BREATHING_COMPLETED))

    def stop(self) -> None:
        for timer in (self._cycle, self.countdown):
            if timer is not None:
                timer.cancel()


class ReliefZone:
    """Anxiety relief screen: vent box plus a breathing exercise."""

    def __init__(
        self,
        scope: ScreenScope,
        engine: AchievementEngine,
        on_event: Optional[EventSink] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.scope = scope
        self.engine = engine
        self.on_event = on_event
        self.breathing = BreathingExercise(scope, engine, on_event=on_event, sleep=sleep)

    def vent(self, text: str) -> bool:
        """Send a worry away; the text itself is never stored."""
        if not (text or "").strip():
            return False
        logger.info(f"vent_sent | chars={len(text)}")
        emit(self.on_event, "vent_sent", {})
        self.engine.evaluate(TriggerEvent(kind=VENT_SENT))
        return True
