from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from loguru import logger


EventSink = Callable[[Dict[str, Any]], None]


class Role(Enum):
    USER = "user"
    MODEL = "model"


class PageStyle(Enum):
    LINED = "lined"
    DOTTED = "dotted"
    BLANK = "blank"

    @classmethod
    def parse(cls, value: Any) -> "PageStyle":
        try:
            return cls(value)
        except ValueError:
            return cls.LINED


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationTurn:
    role: Role
    text: str
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())
    # hidden turns are sent to the provider but never shown or graded
    hidden: bool = False
    # locally generated stand-in for a failed reply; never part of the log
    error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp,
            "hidden": self.hidden,
            "error": self.error,
        }


def emit(sink: Optional[EventSink], kind: str, data: Dict[str, Any]) -> None:
    """Deliver one UI event; a failing sink is logged, never propagated."""
    if sink is None:
        return
    try:
        sink({"type": kind, "data": data})
    except Exception as e:
        logger.warning(f"event_sink_failed | type={kind} | {e}")
