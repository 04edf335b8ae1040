# end-to-end tests for the wired application object

import asyncio

import pytest

from bloomout.app import BloomOut, configure_logging
from bloomout.preferences import UserProfile
from bloomout.reviewer import ScenarioRun
from bloomout.session import AUTO_START_MESSAGE
from bloomout.storage import MemoryStore
from tests.conftest import EventLog, FakeProvider, fake_sleep


GOOD = {"engagement_score": 5, "reciprocity_score": 4, "suggestion": "Share a bit about yourself too."}


@pytest.fixture
def app_parts():
    kv = MemoryStore()
    provider = FakeProvider(structured=[GOOD])
    events = EventLog()
    app = BloomOut(kv=kv, provider=provider, on_event=events, sleep=fake_sleep)
    return app, provider, events


class TestStartup:
    def test_first_launch_opens_onboarding(self, app_parts):
        app, _, _ = app_parts
        assert app.screen.name == "onboarding"

    def test_returning_user_opens_dashboard(self):
        kv = MemoryStore({"bloomout_has_launched": "true"})
        app = BloomOut(kv=kv, provider=FakeProvider())
        assert app.screen.name == "dashboard"

    def test_configure_logging_accepts_env_level(self, monkeypatch):
        monkeypatch.setenv("BLOOMOUT_LOG_LEVEL", "debug")
        configure_logging()


class TestChats:
    async def test_open_bloom_greets_with_profile(self, app_parts):
        app, provider, events = app_parts
        app.preferences.complete_onboarding(UserProfile(username="Ana"))
        session = await app.open_chat("bloom")
        assert provider.sent == [AUTO_START_MESSAGE]
        assert "- Their name is Ana." in provider.created[0]
        assert app.screen.name == "chat:bloom"
        assert len(session.transcript()) == 1

    async def test_navigating_away_closes_sessions(self, app_parts):
        app, _, _ = app_parts
        session = await app.open_chat("sparky")
        old_screen = app.screen
        app.navigate("dashboard")
        assert not session.active
        assert not old_screen.active
        assert app.orchestrator.sessions == {}


class TestPracticeFlow:
    async def test_practice_to_analysis(self, app_parts):
        app, provider, events = app_parts
        session = await app.start_practice("Workspace", 3)
        await app.orchestrator.submit(session, "I'd rather keep the deadline, the team is stretched.")
        run = app.end_practice(session, "Workspace", 3)
        assert app.screen.name == "analysis"
        assert [t.role.value for t in run.transcript] == ["model", "user", "model"]

        result = await app.analyze(run)
        assert result.engagement_score == 5
        p = app.progress.load()
        assert p.conversation_count == 1
        assert p.unlocked_achievements == ["FIRST_CONVO", "LEVEL_3"]
        assert [e["id"] for e in events.of("achievement_unlocked")] == ["FIRST_CONVO", "LEVEL_3"]
        assert {n["id"] for n in app.toasts.visible} <= {"FIRST_CONVO", "LEVEL_3"}

    async def test_second_analysis_while_first_outstanding_is_rejected(self, app_parts):
        app, provider, _ = app_parts
        session = await app.start_practice("Daily Talk", 1)
        await app.orchestrator.submit(session, "Hi, how was your weekend?")
        run = app.end_practice(session, "Daily Talk", 1)
        other = ScenarioRun("Daily Talk", 2, run.transcript)

        provider.gate = asyncio.Event()
        first = asyncio.create_task(app.analyze(run))
        await asyncio.sleep(0)
        assert await app.analyze(other) is None
        assert not other.applied

        provider.gate.set()
        assert (await first).engagement_score == 5
        assert app.progress.load().conversation_count == 1
        assert len(provider.prompts) == 1

    async def test_leaving_without_speaking_skips_analysis(self, app_parts):
        app, provider, _ = app_parts
        session = await app.start_practice("Daily Talk", 1)
        assert app.end_practice(session, "Daily Talk", 1) is None
        assert app.screen.name == "practice_levels"
        assert provider.prompts == []


class TestRelief:
    async def test_vent_from_relief_zone(self, app_parts):
        app, _, events = app_parts
        zone = app.relief_zone()
        assert app.screen.name == "relief"
        zone.vent("deadline stress")
        assert events.of("vent_sent") == [{}]
        assert app.progress.load().unlocked_achievements == ["VENTED"]
        assert app.toasts.visible == [{"id": "VENTED", "name": "Let It Go", "icon": "🕊️"}]

    async def test_shutdown_stops_everything(self, app_parts):
        app, _, _ = app_parts
        zone = app.relief_zone()
        zone.breathing.start()
        app.shutdown()
        await zone.breathing.countdown.wait()
        assert not zone.breathing.completed
        assert not app.app_scope.active
