# tests for the persisted progress document

from bloomout.progress import Progress, ProgressStore
from bloomout.storage import PROGRESS_KEY, MemoryStore, load_json


class TestProgress:
    def test_defaults(self):
        p = Progress()
        assert p.unlocked_achievements == []
        assert p.conversation_count == 0
        assert p.completed_categories == []
        assert p.journal_count == 0

    def test_grant_is_idempotent(self):
        p = Progress()
        assert p.grant("FIRST_CONVO") is True
        assert p.grant("FIRST_CONVO") is False
        assert p.unlocked_achievements == ["FIRST_CONVO"]

    def test_record_conversation_dedupes_categories(self):
        p = Progress()
        p.record_conversation("Workspace")
        p.record_conversation("Workspace")
        p.record_conversation("Daily Talk")
        assert p.conversation_count == 3
        assert p.completed_categories == ["Workspace", "Daily Talk"]

    def test_to_dict_shape(self):
        p = Progress(["LEVEL_3"], 2, ["Workspace"], 1)
        assert p.to_dict() == {
            "unlockedAchievements": ["LEVEL_3"],
            "conversationStats": {"count": 2, "completedCategories": ["Workspace"]},
            "journalStats": {"count": 1},
        }

    def test_from_dict_tolerates_partial_and_garbage(self):
        p = Progress.from_dict({
            "unlockedAchievements": ["A", "A", 3, "B"],
            "conversationStats": {"count": "x"},
            "journalStats": "nope",
        })
        assert p.unlocked_achievements == ["A", "B"]
        assert p.conversation_count == 0
        assert p.completed_categories == []
        assert p.journal_count == 0


class TestProgressStore:
    def test_load_absent_returns_default(self, progress_store):
        assert progress_store.load() == Progress()

    def test_save_then_load(self, kv, progress_store):
        p = Progress()
        p.grant("VENTED")
        p.record_conversation("On a Date")
        progress_store.save(p)
        assert load_json(kv, PROGRESS_KEY)["unlockedAchievements"] == ["VENTED"]
        assert progress_store.load() == p

    def test_corrupt_document_loads_as_default(self):
        store = ProgressStore(MemoryStore({PROGRESS_KEY: "{oops"}))
        assert store.load() == Progress()

    def test_non_object_document_loads_as_default(self):
        store = ProgressStore(MemoryStore({PROGRESS_KEY: "[1]"}))
        assert store.load() == Progress()
