# tests for conversation sessions and the orchestrator
# turn ordering, busy rejection, failure handling and stale replies

import asyncio

import pytest

from bloomout.agents import PERSONAS, Persona
from bloomout.errors import ProviderError, SessionBusy
from bloomout.preferences import UserProfile
from bloomout.session import APOLOGY_TEXT, AUTO_START_MESSAGE, ConversationSession, SessionOrchestrator
from bloomout.states import Role
from tests.conftest import EventLog, FakeProvider


def _roles(session):
    return [(t.role, t.text) for t in session.turns]


class TestConversationSession:
    async def test_turns_alternate(self):
        provider = FakeProvider(replies=["hello!", "sure"])
        session = ConversationSession("sparky", "be nice", provider)
        await session.send_turn("hi")
        turn = await session.send_turn("talk?")
        assert turn.role == Role.MODEL and turn.text == "sure"
        assert _roles(session) == [
            (Role.USER, "hi"), (Role.MODEL, "hello!"), (Role.USER, "talk?"), (Role.MODEL, "sure"),
        ]
        assert provider.created == ["be nice"]

    async def test_failure_on_third_turn_leaves_unanswered_message(self):
        provider = FakeProvider(replies=["a", "b", ProviderError("quota"), "d"])
        session = ConversationSession("sparky", "x", provider)
        await session.send_turn("1")
        await session.send_turn("2")
        with pytest.raises(ProviderError):
            await session.send_turn("3")
        assert len(session.turns) == 5
        assert session.last_user_turn_unanswered()
        assert not session.busy

        await session.send_turn("4")
        assert _roles(session)[-2:] == [(Role.USER, "4"), (Role.MODEL, "d")]

    async def test_second_send_while_outstanding_is_rejected(self):
        provider = FakeProvider(replies=["late"])
        provider.gate = asyncio.Event()
        session = ConversationSession("sparky", "x", provider)
        first = asyncio.create_task(session.send_turn("one"))
        await asyncio.sleep(0)
        assert session.busy
        with pytest.raises(SessionBusy):
            await session.send_turn("two")
        provider.gate.set()
        await first
        assert _roles(session) == [(Role.USER, "one"), (Role.MODEL, "late")]
        assert provider.sent == ["one"]

    async def test_transcript_hides_hidden_turns(self):
        session = ConversationSession("bloom", "x", FakeProvider(replies=["Hi, I'm Bloom"]))
        await session.send_turn(AUTO_START_MESSAGE, hidden=True)
        assert [t.text for t in session.transcript()] == ["Hi, I'm Bloom"]
        assert not session.has_user_input()

    def test_drop_unanswered_turn_on_empty_log(self):
        session = ConversationSession("sparky", "x", FakeProvider())
        assert session.drop_unanswered_turn() is None


class TestSessionOrchestrator:
    async def test_submit_emits_user_typing_and_reply(self):
        events = EventLog()
        orch = SessionOrchestrator(FakeProvider(replies=["hey"]), on_event=events)
        session = orch.open("sparky", "x")
        turn = await orch.submit(session, "  hello  ")
        assert turn.text == "hey"
        assert [e["type"] for e in events] == ["turn", "typing", "typing", "turn"]
        assert events[0]["data"]["text"] == "hello"
        assert events[0]["data"]["role"] == "user"
        assert [d["active"] for d in events.of("typing")] == [True, False]
        assert events[-1]["data"]["role"] == "model"

    async def test_blank_submit_sends_nothing(self):
        provider = FakeProvider()
        orch = SessionOrchestrator(provider)
        session = orch.open("sparky", "x")
        assert await orch.submit(session, "   ") is None
        assert provider.sent == []
        assert session.turns == []

    async def test_failure_yields_apology_not_logged(self):
        events = EventLog()
        orch = SessionOrchestrator(FakeProvider(replies=[ProviderError("boom")]), on_event=events)
        session = orch.open("sparky", "x")
        turn = await orch.submit(session, "hi")
        assert turn.error is True
        assert turn.text == APOLOGY_TEXT
        assert _roles(session) == [(Role.USER, "hi")]
        assert events[-1]["data"]["error"] is True

    async def test_rollback_on_failure_drops_user_turn(self):
        orch = SessionOrchestrator(FakeProvider(replies=[ProviderError("boom")]), rollback_on_failure=True)
        session = orch.open("sparky", "x")
        await orch.submit(session, "hi")
        assert session.turns == []

    async def test_busy_submit_returns_none(self):
        provider = FakeProvider(replies=["first"])
        provider.gate = asyncio.Event()
        orch = SessionOrchestrator(provider)
        session = orch.open("sparky", "x")
        pending = asyncio.create_task(orch.submit(session, "one"))
        await asyncio.sleep(0)
        assert await orch.submit(session, "two") is None
        provider.gate.set()
        assert (await pending).text == "first"
        assert provider.sent == ["one"]

    async def test_reply_after_close_is_not_delivered(self):
        events = EventLog()
        provider = FakeProvider(replies=["too late"])
        provider.gate = asyncio.Event()
        orch = SessionOrchestrator(provider, on_event=events)
        session = orch.open("sparky", "x")
        pending = asyncio.create_task(orch.submit(session, "hi"))
        await asyncio.sleep(0)
        orch.close("sparky")
        provider.gate.set()
        await pending
        assert [e["type"] for e in events] == ["turn", "typing"]
        assert orch.get("sparky") is None

    async def test_open_replaces_previous_session(self):
        orch = SessionOrchestrator(FakeProvider())
        old = orch.open("sparky", "x")
        new = orch.open("sparky", "x")
        assert old is not new
        assert not old.active
        assert orch.get("sparky") is new

    async def test_auto_start_persona_greets_first(self):
        events = EventLog()
        provider = FakeProvider(replies=["Hello, I'm Bloom."])
        orch = SessionOrchestrator(provider, on_event=events)
        session = await orch.open_persona(PERSONAS["bloom"])
        assert provider.sent == [AUTO_START_MESSAGE]
        assert [t.text for t in session.transcript()] == ["Hello, I'm Bloom."]
        # the hidden opener is never shown
        assert [d["role"] for d in events.of("turn")] == ["model"]

    async def test_open_persona_personalizes_instruction(self):
        provider = FakeProvider()
        orch = SessionOrchestrator(provider)
        persona = Persona("sparky", "Open Chat", "", "base", "💡")
        session = await orch.open_persona(persona, UserProfile(username="Sam", hobby="chess"))
        assert session.turns == []
        assert provider.created[0].startswith("base\n\n")
        assert "- Their name is Sam." in provider.created[0]
        assert "- Their hobby is chess." in provider.created[0]

    def test_close_all(self):
        orch = SessionOrchestrator(FakeProvider())
        a = orch.open("sparky", "x")
        b = orch.open("bloom", "y")
        orch.close_all()
        assert orch.sessions == {}
        assert not a.active and not b.active
