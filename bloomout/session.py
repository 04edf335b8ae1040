from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger

from .agents import Persona, personalize_instruction
from .errors import ProviderError, SessionBusy
from .preferences import UserProfile
from .provider import ChatProvider
from .states import ConversationTurn, EventSink, Role, emit


AUTO_START_MESSAGE = "Start the conversation."
APOLOGY_TEXT = "Sorry, I encountered an error. Please try again."


def _one_line(text: str, limit: int = 200) -> str:
    raw = text or ""
    snippet = raw if len(raw) <= limit else raw[:limit] + "..."
    return " ".join(snippet.split())


class ConversationSession:
    """One persona's ordered turn log bound to a provider chat handle.

    Turns are append-only. Only one ``send_turn`` may be outstanding; a second
    call before the first settles raises SessionBusy.
    """

    def __init__(self, persona_id: str, system_instruction: str, provider: ChatProvider) -> None:
        self.persona_id = persona_id
        self.system_instruction = system_instruction
        self.provider = provider
        self.handle: Any = provider.create_session(system_instruction)
        self.turns: List[ConversationTurn] = []
        self.active = True
        self._pending = False

    @property
    def busy(self) -> bool:
        return self._pending

    async def send_turn(self, text: str, hidden: bool = False) -> ConversationTurn:
        if self._pending:
            raise SessionBusy(f"a turn is already outstanding for {self.persona_id}")
        self._pending = True
        self.turns.append(ConversationTurn(role=Role.USER, text=text, hidden=hidden))
        try:
            reply = await self.provider.session_send(self.handle, text)
        finally:
            self._pending = False
        turn = ConversationTurn(role=Role.MODEL, text=reply)
        self.turns.append(turn)
        return turn

    def last_user_turn_unanswered(self) -> bool:
        return bool(self.turns) and self.turns[-1].role == Role.USER

    def drop_unanswered_turn(self) -> Optional[ConversationTurn]:
        if self._pending or not self.last_user_turn_unanswered():
            return None
        return self.turns.pop()

    def transcript(self) -> List[ConversationTurn]:
        """Turns meant for display and grading (hidden openers excluded)."""
        return [t for t in self.turns if not t.hidden]

    def has_user_input(self) -> bool:
        return any(t.role == Role.USER for t in self.transcript())

    def close(self) -> None:
        self.active = False


class SessionOrchestrator:
    """Drives turn submission over the sessions of the current screen.

    Sessions live in a registry keyed by persona id; opening a persona again
    replaces (and closes) its previous session so one is never reused across
    screen visits. Provider errors are absorbed here: the UI receives a
    locally generated apology turn that is never appended to the log.
    """

    def __init__(
        self,
        provider: ChatProvider,
        on_event: Optional[EventSink] = None,
        rollback_on_failure: bool = False,
        apology: str = APOLOGY_TEXT,
    ) -> None:
        self.provider = provider
        self.on_event = on_event
        self.rollback_on_failure = rollback_on_failure
        self.apology = apology
        self.sessions: Dict[str, ConversationSession] = {}

    def open(self, persona_id: str, system_instruction: str) -> ConversationSession:
        previous = self.sessions.get(persona_id)
        if previous is not None:
            previous.close()
        session = ConversationSession(persona_id, system_instruction, self.provider)
        self.sessions[persona_id] = session
        logger.info(f"chat_session_open | persona={persona_id}")
        return session

    async def open_persona(self, persona: Persona, profile: Optional[UserProfile] = None) -> ConversationSession:
        session = self.open(persona.id, personalize_instruction(persona.instruction, profile))
        if persona.auto_start:
            await self.auto_start(session)
        return session

    def get(self, persona_id: str) -> Optional[ConversationSession]:
        return self.sessions.get(persona_id)

    def close(self, persona_id: str) -> None:
        session = self.sessions.pop(persona_id, None)
        if session is not None:
            session.close()
            logger.info(f"chat_session_close | persona={persona_id} turns={len(session.turns)}")

    def close_all(self) -> None:
        for persona_id in list(self.sessions):
            self.close(persona_id)

    async def auto_start(self, session: ConversationSession) -> Optional[ConversationTurn]:
        """Have the persona open the conversation; the sentinel turn stays hidden."""
        return await self._exchange(session, AUTO_START_MESSAGE, hidden=True)

    async def submit(self, session: ConversationSession, text: str) -> Optional[ConversationTurn]:
        """Send one user message and return the turn to display.

        Returns None for blank input or when a turn is already outstanding.
        """
        message = (text or "").strip()
        if not message:
            return None
        return await self._exchange(session, message, hidden=False)

    async def _exchange(self, session: ConversationSession, text: str, hidden: bool) -> Optional[ConversationTurn]:
        if session.busy:
            logger.warning(f"chat_turn_rejected | persona={session.persona_id} | turn already outstanding")
            return None
        if not hidden:
            emit(self.on_event, "turn", ConversationTurn(role=Role.USER, text=text).to_dict())
        emit(self.on_event, "typing", {"persona_id": session.persona_id, "active": True})
        try:
            turn = await session.send_turn(text, hidden=hidden)
        except SessionBusy as e:
            logger.warning(f"chat_turn_rejected | persona={session.persona_id} | {e}")
            return None
        except ProviderError as e:
            logger.error(f"chat_turn_failed | persona={session.persona_id} | {e}")
            if self.rollback_on_failure:
                session.drop_unanswered_turn()
            turn = ConversationTurn(role=Role.MODEL, text=self.apology, error=True)
        finally:
            if session.active:
                emit(self.on_event, "typing", {"persona_id": session.persona_id, "active": False})
        if not session.active:
            logger.warning(f"chat_turn_stale | persona={session.persona_id} | screen left before reply")
            return turn
        self._log_turn(session, turn)
        emit(self.on_event, "turn", turn.to_dict())
        return turn

    def _log_turn(self, session: ConversationSession, turn: ConversationTurn) -> None:
        logger.info(
            f"chat_turn | persona={session.persona_id} t={len(session.turns)} error={turn.error} "
            f"| msg='{_one_line(turn.text)}'"
        )
