# shared fixtures for engine tests
# provides an in-memory store, a scripted provider and a loop-yielding sleep

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from bloomout.achievements import AchievementEngine
from bloomout.progress import ProgressStore
from bloomout.storage import MemoryStore


class FakeProvider:
    """Scripted ChatProvider: replies and structured results are popped in order.

    A queued Exception is raised instead of returned. When ``gate`` is set,
    every call waits on it so tests can hold a call outstanding.
    """

    def __init__(self, replies=None, structured=None):
        self.replies = list(replies or [])
        self.structured = list(structured or [])
        self.created = []
        self.sent = []
        self.prompts = []
        self.gate = None

    def create_session(self, system_instruction):
        self.created.append(system_instruction)
        return {"instruction": system_instruction}

    async def session_send(self, handle, text):
        self.sent.append(text)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        reply = self.replies.pop(0) if self.replies else f"reply to {text}"
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def structured_query(self, prompt, schema):
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        value = self.structured.pop(0)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, dict):
            return schema.model_validate(value)
        return value


class EventLog(list):
    """Collects UI events; callable so it can be passed as ``on_event``."""

    def __call__(self, event):
        self.append(event)

    def of(self, kind):
        return [e["data"] for e in self if e["type"] == kind]


async def fake_sleep(seconds):
    # yield to the loop without waiting on the wall clock
    await asyncio.sleep(0)


class StepClock:
    """Deterministic clock; advances one second per call unless frozen."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def progress_store(kv):
    return ProgressStore(kv)


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def engine(progress_store, events):
    return AchievementEngine(progress_store, on_event=events)


@pytest.fixture
def provider():
    return FakeProvider()
