from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from loguru import logger

from .errors import PersistenceReadError
from .storage import PROGRESS_KEY, KeyValueStore, dump_json, load_json


def _int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _unique(values: Any) -> List[str]:
    out: List[str] = []
    if not isinstance(values, list):
        return out
    for v in values:
        if isinstance(v, str) and v not in out:
            out.append(v)
    return out


@dataclass
class Progress:
    """Achievement and usage counters; every field only ever grows."""

    # kept in unlock order, no duplicates
    unlocked_achievements: List[str] = field(default_factory=list)
    conversation_count: int = 0
    completed_categories: List[str] = field(default_factory=list)
    journal_count: int = 0

    def has(self, achievement_id: str) -> bool:
        return achievement_id in self.unlocked_achievements

    def grant(self, achievement_id: str) -> bool:
        """Add an achievement id; returns False when it was already present."""
        if self.has(achievement_id):
            return False
        self.unlocked_achievements.append(achievement_id)
        return True

    def record_conversation(self, category: str) -> None:
        self.conversation_count += 1
        if category not in self.completed_categories:
            self.completed_categories.append(category)

    def record_journal_entry(self) -> None:
        self.journal_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unlockedAchievements": list(self.unlocked_achievements),
            "conversationStats": {
                "count": self.conversation_count,
                "completedCategories": list(self.completed_categories),
            },
            "journalStats": {"count": self.journal_count},
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Progress":
        convo = raw.get("conversationStats") or {}
        journal = raw.get("journalStats") or {}
        if not isinstance(convo, dict):
            convo = {}
        if not isinstance(journal, dict):
            journal = {}
        return cls(
            unlocked_achievements=_unique(raw.get("unlockedAchievements")),
            conversation_count=_int(convo.get("count", 0)),
            completed_categories=_unique(convo.get("completedCategories")),
            journal_count=_int(journal.get("count", 0)),
        )


class ProgressStore:
    """Loads and saves the Progress document as one whole record."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def load(self) -> Progress:
        try:
            raw = load_json(self.kv, PROGRESS_KEY)
        except PersistenceReadError as e:
            logger.warning(f"progress_unreadable | using empty progress | {e}")
            return Progress()
        if raw is None:
            return Progress()
        if not isinstance(raw, dict):
            logger.warning("progress_unreadable | using empty progress | document is not an object")
            return Progress()
        return Progress.from_dict(raw)

    def save(self, progress: Progress) -> None:
        dump_json(self.kv, PROGRESS_KEY, progress.to_dict())
        logger.debug(
            f"progress_saved | unlocked={len(progress.unlocked_achievements)} "
            f"convos={progress.conversation_count} journals={progress.journal_count}"
        )
