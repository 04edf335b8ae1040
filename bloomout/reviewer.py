from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .achievements import ANALYSIS_COMPLETED, JOURNAL_REFLECTED, Achievement, AchievementEngine, TriggerEvent
from .agents import load_prompt
from .errors import ProviderFailure, SessionBusy
from .journal import JournalEntry
from .progress import ProgressStore
from .provider import ChatProvider
from .states import ConversationTurn, EventSink, Role, emit
from .timers import ScreenScope


_DEFAULT_ANALYSIS_PROMPT = (
    "Based on the following conversation transcript, act as a supportive and friendly communication coach."
    " Rate the user's engagement and reciprocity from 1 (poor) to 5 (excellent) and give one single, kind,"
    " and actionable suggestion for next time. The user's messages are from the 'user' role."
)

_DEFAULT_REFLECTION_PROMPT = (
    "You are Bloom, a gentle AI therapist. Name the main feelings in the user's journal entry and write a short,"
    " warm reflection that validates them. Do not diagnose."
)

_ANALYSIS_PROMPT = load_prompt("analysis_prompt", _DEFAULT_ANALYSIS_PROMPT)
_REFLECTION_PROMPT = load_prompt("journal_reflection_prompt", _DEFAULT_REFLECTION_PROMPT)


class AnalysisResult(BaseModel):
    """Coach feedback for one practice conversation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    engagement_score: int = Field(..., ge=1, le=5, description="Score from 1 to 5 for engagement.")
    reciprocity_score: int = Field(..., ge=1, le=5, description="Score from 1 to 5 for reciprocity.")
    suggestion: str = Field(..., min_length=1, description="A single, kind, and actionable suggestion.")


class JournalReflection(BaseModel):
    """Bloom's reading of a journal entry."""

    feelings: List[str] = Field(default_factory=list, max_length=5, description="Main feelings, one or two words each.")
    reflection: str = Field(..., min_length=1, description="A short, warm, validating reflection.")


@dataclass
class ScenarioRun:
    """A finished practice conversation waiting for (or holding) its analysis."""

    category: str
    level: int
    transcript: List[ConversationTurn]
    result: Optional[AnalysisResult] = None
    unlocked: List[Achievement] = field(default_factory=list)
    failures: int = 0

    @property
    def applied(self) -> bool:
        return self.result is not None


def format_transcript(transcript: List[ConversationTurn]) -> str:
    lines = []
    for turn in transcript:
        speaker = "User" if turn.role == Role.USER else "AI"
        lines.append(f"{speaker}: {turn.text}")
    return "\n".join(lines)


class AnalysisService:
    """Grades finished conversations and drives the progress layer."""

    def __init__(
        self,
        provider: ChatProvider,
        progress: ProgressStore,
        engine: AchievementEngine,
        on_event: Optional[EventSink] = None,
    ) -> None:
        self.provider = provider
        self.progress = progress
        self.engine = engine
        self.on_event = on_event
        self._pending = False

    async def analyze(self, transcript: List[ConversationTurn]) -> AnalysisResult:
        """One schema-constrained query over the whole transcript; raises ProviderFailure."""
        prompt = f"{_ANALYSIS_PROMPT}\n\n--- CONVERSATION ---\n{format_transcript(transcript)}"
        logger.info(f"analysis:start | turns={len(transcript)}")
        result = await self.provider.structured_query(prompt, AnalysisResult)
        logger.info(
            f"analysis:done | engagement={result.engagement_score} reciprocity={result.reciprocity_score}"
        )
        return result

    async def complete_scenario(self, run: ScenarioRun, scope: Optional[ScreenScope] = None) -> Optional[AnalysisResult]:
        """Analyse ``run`` and apply its progress exactly once.

        Returns None when the analysis failed (the caller offers a retry that
        passes the same run again) or when ``scope`` was left before the
        provider answered. A run that already succeeded returns its result
        without touching Progress again.
        """
        if run.applied:
            return run.result
        if self._pending:
            raise SessionBusy("an analysis is already outstanding")
        self._pending = True
        try:
            result = await self.analyze(run.transcript)
        except ProviderFailure as e:
            run.failures += 1
            logger.error(f"analysis:failed | category={run.category} level={run.level} attempt={run.failures} | {e}")
            if scope is None or scope.active:
                emit(self.on_event, "analysis_failed", {"retry": True, "error": str(e)})
            return None
        finally:
            self._pending = False

        if scope is not None and not scope.active:
            logger.warning(f"analysis:stale | screen={scope.name} | result discarded, progress untouched")
            return None

        progress = self.progress.load()
        progress.record_conversation(run.category)
        self.progress.save(progress)
        unlocked = self.engine.evaluate(
            TriggerEvent(kind=ANALYSIS_COMPLETED, category=run.category, level=run.level), progress
        )
        run.result = result
        run.unlocked = unlocked
        logger.info(
            f"scenario_complete | category={run.category} level={run.level} "
            f"count={progress.conversation_count} unlocked={[a.id for a in unlocked]}"
        )
        emit(
            self.on_event,
            "analysis_ready",
            {**result.model_dump(by_alias=True), "unlocked": [a.id for a in unlocked]},
        )
        return result

    async def reflect_on_entry(self, entry: JournalEntry, scope: Optional[ScreenScope] = None) -> Optional[JournalReflection]:
        """Ask Bloom to reflect on a journal entry; None when the query failed."""
        body = f"Title: {entry.title}\n\n{entry.body}".strip()
        prompt = f"{_REFLECTION_PROMPT}\n\n--- JOURNAL ENTRY ---\n{body}"
        try:
            reflection = await self.provider.structured_query(prompt, JournalReflection)
        except ProviderFailure as e:
            logger.error(f"reflection:failed | entry={entry.id} | {e}")
            return None
        if scope is not None and not scope.active:
            logger.warning(f"reflection:stale | screen={scope.name} | progress untouched")
            return reflection
        logger.info(f"reflection:done | entry={entry.id} feelings={reflection.feelings}")
        self.engine.evaluate(TriggerEvent(kind=JOURNAL_REFLECTED))
        return reflection
