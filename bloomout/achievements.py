from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from .progress import Progress, ProgressStore
from .scenarios import CATEGORIES
from .states import EventSink, emit
from .timers import Delay, ScreenScope, Sleep


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str

    def notification(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "icon": self.icon}


ACHIEVEMENTS: Dict[str, Achievement] = {
    a.id: a
    for a in (
        Achievement("FIRST_CONVO", "Icebreaker", "Complete your first practice conversation.", "💬"),
        Achievement("FIVE_CONVOS", "Socializer", "Complete 5 practice conversations.", "🗣️"),
        Achievement("TEN_CONVOS", "Chatterbox", "Complete 10 practice conversations.", "🌟"),
        Achievement("ALL_CATEGORIES", "Master Communicator", "Complete a scenario in every category.", "🎓"),
        Achievement("LEVEL_3", "Courageous", "Successfully complete a Level 3 scenario.", "💪"),
        Achievement("FIRST_JOURNAL", "First Thoughts", "Write and save your first journal entry.", "✍️"),
        Achievement("CREATIVE_JOURNAL", "Creative Soul", "Add a doodle or an image to a journal entry.", "🎨"),
        Achievement("REFLECTIVE_MIND", "Deep Thinker", "Analyze your feelings with Bloom in your journal.", "🧠"),
        Achievement("VENTED", "Let It Go", "Send away a worry in the Anxiety Relief Zone.", "🕊️"),
        Achievement("BREATHED", "Zen Mode", "Complete a full 1-minute breathing exercise.", "🧘"),
    )
}


ANALYSIS_COMPLETED = "analysis_completed"
JOURNAL_SAVED = "journal_saved"
JOURNAL_REFLECTED = "journal_reflected"
VENT_SENT = "vent_sent"
BREATHING_COMPLETED = "breathing_completed"


@dataclass(frozen=True)
class TriggerEvent:
    kind: str
    category: Optional[str] = None
    level: Optional[int] = None
    has_artifacts: bool = False


Predicate = Callable[[Progress, TriggerEvent], bool]


def _always(progress: Progress, event: TriggerEvent) -> bool:
    return True


def _completions_at_least(n: int) -> Predicate:
    return lambda progress, event: progress.conversation_count >= n


def _completed_level(level: int) -> Predicate:
    return lambda progress, event: event.level == level


def _all_categories(progress: Progress, event: TriggerEvent) -> bool:
    return set(CATEGORIES) <= set(progress.completed_categories)


def _journal_written(progress: Progress, event: TriggerEvent) -> bool:
    return progress.journal_count >= 1


def _has_artifacts(progress: Progress, event: TriggerEvent) -> bool:
    return event.has_artifacts


# event kind -> ordered (predicate, achievement id); order fixes notification order
RULES: Dict[str, List[Tuple[Predicate, str]]] = {
    ANALYSIS_COMPLETED: [
        (_completions_at_least(1), "FIRST_CONVO"),
        (_completions_at_least(5), "FIVE_CONVOS"),
        (_completions_at_least(10), "TEN_CONVOS"),
        (_completed_level(3), "LEVEL_3"),
        (_all_categories, "ALL_CATEGORIES"),
    ],
    JOURNAL_SAVED: [
        (_journal_written, "FIRST_JOURNAL"),
        (_has_artifacts, "CREATIVE_JOURNAL"),
    ],
    JOURNAL_REFLECTED: [(_always, "REFLECTIVE_MIND")],
    VENT_SENT: [(_always, "VENTED")],
    BREATHING_COMPLETED: [(_always, "BREATHED")],
}


class AchievementEngine:
    """Evaluates unlock rules against the persisted Progress document.

    Unlocking is idempotent: an id already in ``unlockedAchievements`` is never
    re-added, re-saved or re-announced.
    """

    def __init__(
        self,
        store: ProgressStore,
        on_event: Optional[EventSink] = None,
        rules: Optional[Dict[str, List[Tuple[Predicate, str]]]] = None,
    ) -> None:
        self.store = store
        self.on_event = on_event
        self.rules = RULES if rules is None else rules

    def _announce(self, achievement: Achievement) -> None:
        logger.info(f"achievement_unlocked | id={achievement.id} name={achievement.name}")
        emit(self.on_event, "achievement_unlocked", achievement.notification())

    def unlock(self, achievement_id: str, progress: Optional[Progress] = None) -> Optional[Achievement]:
        achievement = ACHIEVEMENTS.get(achievement_id)
        if achievement is None:
            logger.warning(f"achievement_unknown | id={achievement_id}")
            return None
        progress = progress if progress is not None else self.store.load()
        if not progress.grant(achievement_id):
            return None
        self.store.save(progress)
        self._announce(achievement)
        return achievement

    def evaluate(self, event: TriggerEvent, progress: Optional[Progress] = None) -> List[Achievement]:
        """Apply every rule for ``event.kind`` in table order.

        All ids unlocked by one event land in a single saved document; the
        notifications follow afterwards in the same order.
        """
        progress = progress if progress is not None else self.store.load()
        unlocked: List[Achievement] = []
        for predicate, achievement_id in self.rules.get(event.kind, []):
            if progress.has(achievement_id) or not predicate(progress, event):
                continue
            achievement = ACHIEVEMENTS.get(achievement_id)
            if achievement is None:
                logger.warning(f"achievement_unknown | id={achievement_id}")
                continue
            progress.grant(achievement_id)
            unlocked.append(achievement)
        if unlocked:
            self.store.save(progress)
            for achievement in unlocked:
                self._announce(achievement)
        logger.debug(f"achievements_evaluated | kind={event.kind} unlocked={[a.id for a in unlocked]}")
        return unlocked

    def status(self) -> List[Tuple[Achievement, bool]]:
        progress = self.store.load()
        return [(a, progress.has(a.id)) for a in ACHIEVEMENTS.values()]

    def summary(self) -> Tuple[int, int]:
        progress = self.store.load()
        unlocked = sum(1 for a in ACHIEVEMENTS if progress.has(a))
        return unlocked, len(ACHIEVEMENTS)


class AchievementToasts:
    """Unlock popups currently on screen, each auto-dismissed after ``delay``."""

    def __init__(
        self,
        scope: ScreenScope,
        delay: float = 4.0,
        on_event: Optional[EventSink] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.scope = scope
        self.delay = delay
        self.on_event = on_event
        self._sleep = sleep
        self.visible: List[Dict[str, str]] = []

    def show(self, notification: Dict[str, str]) -> Optional[Delay]:
        self.visible.append(notification)
        if not self.scope.active:
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # no loop to run the dismiss timer on; the popup stays until dismissed
            logger.debug(f"toast_pinned | id={notification.get('id')} | no running event loop")
            return None
        timer = Delay(self.delay, lambda: self.dismiss(notification), sleep=self._sleep)
        self.scope.track(timer)
        return timer

    def dismiss(self, notification: Dict[str, str]) -> None:
        if notification in self.visible:
            self.visible.remove(notification)
            emit(self.on_event, "achievement_dismissed", notification)

    def handle(self, event: Dict) -> None:
        """Event sink adapter: shows every ``achievement_unlocked`` event."""
        if event.get("type") == "achievement_unlocked":
            self.show(event["data"])
