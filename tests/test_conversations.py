"""Tests for conversation list persistence."""

import asyncio
import json

import pytest

from chatstream.models.conversation import DEFAULT_TITLE
from chatstream.models.messages import Message
from chatstream.services.conversations import STORAGE_KEY, ConversationManager, JsonFileStorage


@pytest.fixture
def storage(tmp_path) -> JsonFileStorage:
    return JsonFileStorage(tmp_path / "store" / "conversations.json")


class TestJsonFileStorage:
    """Tests for the key-value file."""

    def test_missing_file(self, storage):
        """Test that a missing file reads as empty."""
        assert storage.get("anything") is None

    def test_set_and_get(self, storage):
        """Test a write followed by a read."""
        storage.set("a", "1")
        storage.set("b", "2")
        assert storage.get("a") == "1"
        assert storage.get("b") == "2"

    def test_corrupt_file(self, storage):
        """Test that an unreadable file reads as empty."""
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("{not json", encoding="utf-8")
        assert storage.get(STORAGE_KEY) is None


class TestConversationManager:
    """Tests for the conversation list."""

    def test_empty_storage_yields_one_conversation(self, storage):
        """Test the default when nothing is stored."""
        manager = ConversationManager(storage)

        assert len(manager.conversations) == 1
        assert manager.active.title == DEFAULT_TITLE
        assert manager.active.messages == []

    @pytest.mark.parametrize("raw", ["not json", json.dumps({"id": "c1"}), json.dumps([{"title": "no id"}]), "[]"])
    def test_malformed_storage_falls_back(self, storage, raw):
        """Test that malformed stored data is never trusted."""
        storage.set(STORAGE_KEY, raw)
        manager = ConversationManager(storage)

        assert len(manager.conversations) == 1
        assert manager.active.messages == []

    def test_update_and_restore(self, storage):
        """Test that saved conversations come back on the next start."""
        manager = ConversationManager(storage)
        manager.update_active(
            [
                Message(role="user", content="What is the capital of France, again?"),
                Message(role="assistant", content="Paris", is_streaming=True),
            ]
        )

        restored = ConversationManager(storage)
        record = restored.active
        assert record.title == "What is the capital of France,..."
        assert [m.content for m in record.messages] == ["What is the capital of France, again?", "Paris"]
        assert record.messages[1].is_streaming is False

    def test_update_with_no_messages_is_ignored(self, storage):
        """Test that an empty update keeps the default title."""
        manager = ConversationManager(storage)
        manager.update_active([])
        assert manager.active.title == DEFAULT_TITLE

    def test_new_select_delete(self, storage):
        """Test list operations and active selection."""
        manager = ConversationManager(storage)
        original = manager.active
        created = manager.new_conversation()

        assert manager.conversations[0] is created
        assert manager.active_id == created.id

        assert manager.select(original.id) is original
        assert manager.select("missing") is None
        assert manager.active_id == original.id

        active = manager.delete(original.id)
        assert active.id == created.id

        replacement = manager.delete(created.id)
        assert len(manager.conversations) == 1
        assert replacement.id != created.id

    @pytest.mark.asyncio
    async def test_saves_are_debounced(self, storage):
        """Test that rapid updates produce a single delayed write."""
        manager = ConversationManager(storage, debounce_seconds=0.02)
        manager.update_active([Message(role="user", content="one")])
        manager.update_active([Message(role="user", content="one"), Message(role="assistant", content="two")])

        assert storage.get(STORAGE_KEY) is None
        await asyncio.sleep(0.06)

        stored = json.loads(storage.get(STORAGE_KEY))
        assert len(stored[0]["messages"]) == 2

    @pytest.mark.asyncio
    async def test_flush_writes_immediately(self, storage):
        """Test that flush cancels the pending write and saves now."""
        manager = ConversationManager(storage, debounce_seconds=10)
        manager.update_active([Message(role="user", content="now")])
        manager.flush()

        assert json.loads(storage.get(STORAGE_KEY))[0]["messages"][0]["content"] == "now"
