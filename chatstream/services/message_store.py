"""Canonical ordered message history with archiving and trimming."""

from collections.abc import Iterable
from datetime import UTC, datetime

from chatstream.models.messages import DataPart, Message, TextPart, VisibleWindow, new_id
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)


class MessageStore:
    """Owns the conversation's message sequence.

    Insertion order is causal order. Other components read messages through
    this store and never mutate the sequence directly.
    """

    def __init__(self, messages: Iterable[Message] | None = None):
        """Initialize message store.

        Args:
            messages: Optional initial history
        """
        self._messages: list[Message] = []
        if messages:
            self.load(messages)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[Message]:
        """Snapshot of the full sequence."""
        return list(self._messages)

    @property
    def last(self) -> Message | None:
        """The most recent message, if any."""
        return self._messages[-1] if self._messages else None

    def get(self, message_id: str) -> Message | None:
        """Find a message by id."""
        return next((message for message in self._messages if message.id == message_id), None)

    def append(self, message: Message) -> Message:
        """Insert a message at the end, keeping timestamps non-decreasing."""
        last = self.last
        if last is not None and message.created_at < last.created_at:
            message.created_at = last.created_at
        self._messages.append(message)
        return message

    def merge_streaming_delta(self, message_id: str, fragment: str) -> bool:
        """Append a text fragment to the last message.

        Fragments for anything but the last message come from a stale or
        cancelled stream and are dropped.

        Args:
            message_id: Id of the message being streamed
            fragment: Text to append

        Returns:
            True if the fragment was merged
        """
        last = self.last
        if last is None or last.id != message_id:
            logger.debug(f"Dropping fragment for stale message {message_id}")
            return False

        last.content += fragment
        if last.parts and isinstance(last.parts[-1], TextPart):
            last.parts[-1].text += fragment
        else:
            last.parts = [*(last.parts or []), TextPart(text=fragment)]
        return True

    def add_part(self, message_id: str, part: DataPart) -> bool:
        """Attach a non-text part to the last message, same staleness rule as text."""
        last = self.last
        if last is None or last.id != message_id:
            return False
        last.parts = [*(last.parts or []), part]
        return True

    def set_streaming(self, message_id: str, streaming: bool) -> None:
        """Flag or unflag the streaming message. Only the last message may stream."""
        for message in self._messages:
            message.is_streaming = False
        if streaming and self.last is not None and self.last.id == message_id:
            self.last.is_streaming = True

    def clear_streaming(self) -> Message | None:
        """Unflag whichever message is streaming and return it."""
        streaming = next((message for message in self._messages if message.is_streaming), None)
        if streaming is not None:
            streaming.is_streaming = False
        return streaming

    def attach_error(self, message_id: str, error: str) -> None:
        """Record a user-visible failure on a message, leaving its content intact."""
        message = self.get(message_id)
        if message is not None:
            message.error = error

    def history_through(self, message_id: str) -> list[Message]:
        """Messages up to and including ``message_id``, or everything if it is unknown."""
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return self._messages[: index + 1]
        return list(self._messages)

    def discard_after(self, message_id: str) -> int:
        """Drop every message after ``message_id``.

        Returns:
            Number of messages removed
        """
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                removed = len(self._messages) - index - 1
                del self._messages[index + 1 :]
                return removed
        return 0

    def last_exchange_prompt(self) -> Message | None:
        """The user message that produced the most recent assistant message.

        Falls back to the last user message when no assistant reply exists yet.
        """
        start = len(self._messages)
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].role == "assistant":
                start = index
                break

        for index in range(start - 1, -1, -1):
            if self._messages[index].role == "user":
                return self._messages[index]
        return None

    def visible_window(self, cap: int) -> VisibleWindow:
        """Return the last ``cap`` messages and how many older ones are hidden.

        Args:
            cap: Visibility cap; hidden messages are not deleted

        Returns:
            Visible suffix and archived count
        """
        archived_count = max(0, len(self._messages) - cap)
        return VisibleWindow(messages=self._messages[archived_count:], archived_count=archived_count)

    def trim(self, keep: int) -> bool:
        """Replace history with a summary marker followed by the last ``keep`` messages.

        Destructive. Does nothing when the conversation is not longer than ``keep``.

        Returns:
            True if the history was trimmed

        Raises:
            ValueError: If ``keep`` is negative
        """
        if keep < 0:
            raise ValueError(f"keep must be non-negative, got {keep}")
        if len(self._messages) <= keep:
            return False

        overflow = len(self._messages) - keep
        kept = self._messages[-keep:] if keep > 0 else []
        summary_text = f"Summary: {overflow} earlier messages trimmed."
        created_at = kept[0].created_at if kept else datetime.now(UTC)
        summary = Message(
            id=f"summary-{new_id()}",
            role="system",
            content=summary_text,
            parts=[TextPart(text=summary_text)],
            created_at=created_at,
            metadata={"summary": True},
        )

        self._messages = [summary, *kept]
        logger.info(f"Trimmed {overflow} messages, kept {len(kept)}")
        return True

    def reset(self) -> None:
        """Clear all messages."""
        self._messages = []

    def load(self, messages: Iterable[Message]) -> None:
        """Replace the sequence wholesale, e.g. when switching conversations."""
        self._messages = []
        for message in messages:
            loaded = message.model_copy(deep=True)
            loaded.is_streaming = False
            self.append(loaded)
