"""Tests for stream metrics."""

import pytest
from conftest import TickingClock

from chatstream.models.messages import DataPart, Message, TextPart
from chatstream.models.stats import StreamStats
from chatstream.services.metrics import MetricsCollector, count_tokens, flatten_text


class TestTokenApproximation:
    """Tests for the whitespace token approximation."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("", 0),
            ("   \n\t ", 0),
            ("Hi ", 1),
            ("Hi there", 2),
            ("  spaced   out\nwords  ", 3),
        ],
    )
    def test_count_tokens(self, text, expected):
        """Test counting whitespace-delimited runs."""
        assert count_tokens(text) == expected

    def test_count_tokens_non_string(self):
        """Test that malformed content counts as zero."""
        assert count_tokens(None) == 0

    def test_flatten_joins_text_parts_with_space(self):
        """Test that parts-only messages are joined with a separator for stats."""
        message = Message(
            role="assistant",
            parts=[TextPart(text="Hello"), DataPart(type="data-x", data=1), TextPart(text="world")],
        )
        assert flatten_text(message) == "Hello world"

    def test_flatten_skips_malformed_text_part(self):
        """Test that a text part without a string is kept opaque and skipped."""
        message = Message.model_validate(
            {"role": "assistant", "parts": [{"type": "text", "text": None}, {"type": "text", "text": "ok"}]}
        )
        assert flatten_text(message) == "ok"
        assert flatten_text(None) == ""


class TestMetricsCollector:
    """Tests for first-token latency and completion stats."""

    def test_begin_resets_stats(self):
        """Test that begin creates zeroed stats for the model."""
        collector = MetricsCollector(TickingClock())
        stats = collector.begin("m1")

        assert stats == StreamStats(model_id="m1", started_at=0.0)
        assert collector.begin("m2") is not stats

    def test_first_token_captured_once(self):
        """Test that time-to-first-token is recorded on the first positive count only."""
        collector = MetricsCollector(TickingClock())
        collector.begin("m1")

        collector.observe(Message(role="assistant", content=" "))
        assert collector.stats.first_token_ms is None

        collector.observe(Message(role="assistant", content="one"))
        assert collector.stats.first_token_ms == 10.0

        collector.observe(Message(role="assistant", content="one two"))
        assert collector.stats.first_token_ms == 10.0
        assert collector.stats.tokens == 2

    def test_tokens_never_decrease(self):
        """Test that token count is monotonic within an exchange."""
        collector = MetricsCollector(TickingClock())
        collector.begin("m1")
        collector.observe(Message(role="assistant", content="a b c"))
        collector.observe(Message(role="assistant", content="a"))
        assert collector.stats.tokens == 3

    def test_finish_sets_duration(self):
        """Test that finish finalizes tokens and duration."""
        collector = MetricsCollector(TickingClock())
        collector.begin("m1")
        stats = collector.finish(Message(role="assistant", content="a b"))

        assert stats.tokens == 2
        assert stats.first_token_ms == 10.0
        assert stats.duration_ms == 20.0

    def test_observe_without_exchange(self):
        """Test that observing before begin is harmless."""
        collector = MetricsCollector(TickingClock())
        collector.observe(Message(role="assistant", content="hi"))
        assert collector.finish(None) is None


class TestThroughput:
    """Tests for the derived throughput."""

    def test_tokens_per_second(self):
        """Test throughput over a completed exchange."""
        stats = StreamStats(model_id="m1", started_at=0.0, tokens=50, duration_ms=2000.0)
        assert stats.tokens_per_second == 25.0

    def test_zero_without_duration(self):
        """Test that throughput is zero until completion."""
        assert StreamStats(model_id="m1", started_at=0.0, tokens=5).tokens_per_second == 0.0
        assert StreamStats(model_id="m1", started_at=0.0, tokens=5, duration_ms=0.0).tokens_per_second == 0.0

    def test_describe(self):
        """Test the summary line."""
        stats = StreamStats(model_id="m1", started_at=0.0, tokens=10, first_token_ms=120.4, duration_ms=1000.0)
        assert stats.describe() == "Model: m1 | Tokens: 10 | Speed: 10.0 t/s | TTFT: 120ms | Duration: 1.00s"
