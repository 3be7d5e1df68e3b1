"""Conversation list with debounced persistence to key-value storage."""

import asyncio
import json
import os
from collections.abc import Iterable
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from chatstream.models.conversation import DEFAULT_TITLE, ConversationRecord
from chatstream.models.messages import Message, new_id
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)

STORAGE_KEY = "chat-conversations"
TITLE_LENGTH = 30

_records_adapter = TypeAdapter(list[ConversationRecord])


class JsonFileStorage:
    """Durable string key-value storage kept in a single JSON file."""

    def __init__(self, path: Path):
        """Initialize storage.

        Args:
            path: File holding the key-value map; created on first write
        """
        self.path = path

    def get(self, key: str) -> str | None:
        """Return the stored value, or None when absent or unreadable."""
        data = self._read()
        value = data.get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing the file atomically."""
        data = self._read()
        data[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def _read(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}


def _new_record() -> ConversationRecord:
    return ConversationRecord(id=f"c{new_id()}")


class ConversationManager:
    """Keeps the list of conversations and which one is active.

    Every mutation schedules a debounced save. Stored data is never trusted:
    anything malformed or missing yields a single empty conversation.
    """

    def __init__(self, storage: JsonFileStorage, debounce_seconds: float = 0.3):
        """Initialize conversation manager.

        Args:
            storage: Durable key-value storage
            debounce_seconds: Quiet period before a scheduled save is written
        """
        self.storage = storage
        self.debounce_seconds = debounce_seconds
        self.conversations: list[ConversationRecord] = self._restore()
        self.active_id = self.conversations[0].id
        self._save_handle: asyncio.TimerHandle | None = None

    def _restore(self) -> list[ConversationRecord]:
        raw = self.storage.get(STORAGE_KEY)
        if raw is None:
            return [_new_record()]

        try:
            records = _records_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Stored conversations are malformed, starting fresh: {e.error_count()} errors")
            return [_new_record()]

        for record in records:
            for message in record.messages:
                message.is_streaming = False
        return records or [_new_record()]

    @property
    def active(self) -> ConversationRecord:
        """The active conversation record."""
        record = self.get(self.active_id)
        if record is None:
            record = self.conversations[0]
            self.active_id = record.id
        return record

    def get(self, conversation_id: str) -> ConversationRecord | None:
        return next((record for record in self.conversations if record.id == conversation_id), None)

    def new_conversation(self) -> ConversationRecord:
        """Create an empty conversation at the top of the list and make it active."""
        record = _new_record()
        self.conversations.insert(0, record)
        self.active_id = record.id
        self.schedule_save()
        return record

    def select(self, conversation_id: str) -> ConversationRecord | None:
        """Make a conversation active.

        Returns:
            The selected record, or None if the id is unknown
        """
        record = self.get(conversation_id)
        if record is None:
            return None
        self.active_id = record.id
        return record

    def delete(self, conversation_id: str) -> ConversationRecord:
        """Delete a conversation.

        Deleting the active one activates the first remaining conversation;
        deleting the last one leaves a fresh empty conversation.

        Returns:
            The active record after deletion
        """
        self.conversations = [record for record in self.conversations if record.id != conversation_id]
        if not self.conversations:
            self.conversations = [_new_record()]
        if self.get(self.active_id) is None:
            self.active_id = self.conversations[0].id
        self.schedule_save()
        return self.active

    def update_active(self, messages: Iterable[Message]) -> None:
        """Store the active conversation's messages and derive its title."""
        snapshot = [message.model_copy(deep=True) for message in messages]
        if not snapshot:
            return

        record = self.active
        record.messages = snapshot
        first = snapshot[0].content
        record.title = f"{first[:TITLE_LENGTH]}..." if first else DEFAULT_TITLE
        self.schedule_save()

    def schedule_save(self) -> None:
        """Write after the debounce delay, restarting the delay on every call."""
        self._cancel_pending_save()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._save_handle = loop.call_later(self.debounce_seconds, self.flush)

    def flush(self) -> None:
        """Write the conversation list now."""
        self._cancel_pending_save()
        payload = _records_adapter.dump_json(self.conversations).decode("utf-8")
        try:
            self.storage.set(STORAGE_KEY, payload)
        except OSError as e:
            logger.warning(f"Failed to persist conversations: {e}")

    def _cancel_pending_save(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
