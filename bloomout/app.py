from __future__ import annotations

import asyncio
import os
import sys
from typing import Any, Dict, Optional

from loguru import logger

from .achievements import AchievementEngine, AchievementToasts
from .agents import get_persona, practice_persona
from .errors import SessionBusy
from .journal import JournalService, JournalStore
from .preferences import Preferences
from .progress import ProgressStore
from .provider import ChatProvider, LangChainProvider
from .relief import ReliefZone
from .reviewer import AnalysisResult, AnalysisService, ScenarioRun
from .scenarios import get_scenario
from .session import ConversationSession, SessionOrchestrator
from .states import EventSink, emit
from .storage import KeyValueStore, default_store
from .timers import ScreenScope, Sleep


def configure_logging(level: Optional[str] = None) -> None:
    lvl = (level or os.getenv("BLOOMOUT_LOG_LEVEL") or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=lvl, colorize=True, format="{time:HH:mm:ss} | {level} | {message}")


class BloomOut:
    """Wires the session/state engine together for one user.

    The UI calls into this object and listens on ``on_event``. Exactly one
    screen scope is active at a time; ``navigate`` closes the previous one,
    which stops its timers and closes its conversation sessions.
    """

    def __init__(
        self,
        kv: Optional[KeyValueStore] = None,
        provider: Optional[ChatProvider] = None,
        on_event: Optional[EventSink] = None,
        rollback_on_failure: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.kv = kv if kv is not None else default_store()
        self.provider = provider if provider is not None else LangChainProvider()
        self.on_event = on_event
        self._sleep = sleep
        self.preferences = Preferences(self.kv)
        self.progress = ProgressStore(self.kv)
        self.app_scope = ScreenScope("app")
        self.toasts = AchievementToasts(self.app_scope, on_event=on_event, sleep=sleep)
        self.achievements = AchievementEngine(self.progress, on_event=self._dispatch)
        self.orchestrator = SessionOrchestrator(
            self.provider, on_event=on_event, rollback_on_failure=rollback_on_failure
        )
        self.analysis = AnalysisService(self.provider, self.progress, self.achievements, on_event=on_event)
        self.journal = JournalService(JournalStore(self.kv), self.progress, self.achievements)
        self.screen = ScreenScope("onboarding" if self.preferences.is_first_launch() else "dashboard")

    def _dispatch(self, event: Dict[str, Any]) -> None:
        if self.on_event is not None:
            emit(self.on_event, event["type"], event["data"])
        self.toasts.handle(event)

    def navigate(self, name: str) -> ScreenScope:
        self.screen.close()
        self.orchestrator.close_all()
        self.screen = ScreenScope(name)
        logger.info(f"navigate | screen={name}")
        return self.screen

    async def open_chat(self, persona_id: str) -> ConversationSession:
        persona = get_persona(persona_id)
        self.navigate(f"chat:{persona_id}")
        return await self.orchestrator.open_persona(persona, self.preferences.profile())

    async def start_practice(self, category: str, level: int) -> ConversationSession:
        persona = practice_persona(get_scenario(category, level))
        self.navigate(f"practice:{category}:{level}")
        return await self.orchestrator.open_persona(persona, self.preferences.profile())

    def end_practice(self, session: ConversationSession, category: str, level: int) -> Optional[ScenarioRun]:
        """Leave the practice chat; a run is only graded if the user said something."""
        if not session.has_user_input():
            self.navigate("practice_levels")
            return None
        run = ScenarioRun(category=category, level=level, transcript=session.transcript())
        self.navigate("analysis")
        return run

    async def analyze(self, run: ScenarioRun) -> Optional[AnalysisResult]:
        """Grade ``run``; None when it failed, went stale or another analysis is still outstanding."""
        try:
            return await self.analysis.complete_scenario(run, scope=self.screen)
        except SessionBusy as e:
            logger.warning(f"analysis:rejected | category={run.category} level={run.level} | {e}")
            return None

    def relief_zone(self) -> ReliefZone:
        scope = self.navigate("relief")
        return ReliefZone(scope, self.achievements, on_event=self.on_event, sleep=self._sleep)

    def shutdown(self) -> None:
        self.screen.close()
        self.orchestrator.close_all()
        self.app_scope.close()
