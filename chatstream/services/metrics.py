"""Streaming statistics derived from conversation progress."""

import time
from collections.abc import Callable

from chatstream.models.messages import Message
from chatstream.models.stats import StreamStats


def flatten_text(message: Message | None) -> str:
    """Flatten a message to plain text for statistics.

    Uses ``content`` when present, otherwise joins text parts with a space.
    Malformed parts are skipped rather than raising.
    """
    if message is None:
        return ""
    if message.content:
        return message.content
    return " ".join(message.text_parts()).strip()


def count_tokens(text: str | None) -> int:
    """Approximate token count: the number of whitespace-delimited runs."""
    if not isinstance(text, str):
        return 0
    return len(text.split())


def monotonic_ms() -> float:
    return time.perf_counter() * 1000


class MetricsCollector:
    """Holds the live StreamStats of the current exchange."""

    def __init__(self, clock: Callable[[], float] = monotonic_ms):
        """Initialize collector.

        Args:
            clock: Millisecond clock, injectable for tests
        """
        self.clock = clock
        self.stats: StreamStats | None = None

    def begin(self, model_id: str) -> StreamStats:
        """Start a fresh exchange. The previous stats object is replaced, not reused."""
        self.stats = StreamStats(model_id=model_id, started_at=self.clock())
        return self.stats

    def observe(self, message: Message | None) -> None:
        """Update token count and capture time-to-first-token once."""
        if self.stats is None:
            return

        tokens = count_tokens(flatten_text(message))
        if self.stats.first_token_ms is None and self.stats.tokens == 0 and tokens > 0:
            self.stats.first_token_ms = self.clock() - self.stats.started_at
        self.stats.tokens = max(self.stats.tokens, tokens)

    def finish(self, message: Message | None) -> StreamStats | None:
        """Finalize tokens and duration on terminal completion."""
        if self.stats is None:
            return None

        self.observe(message)
        self.stats.duration_ms = self.clock() - self.stats.started_at
        return self.stats

    def clear(self) -> None:
        self.stats = None
