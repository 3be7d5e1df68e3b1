"""Tests for data models and configuration."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from chatstream.config import DEFAULT_MODEL, ChatConfig
from chatstream.models.conversation import ConversationRecord, HealthResponse, TelemetryEvent
from chatstream.models.messages import DataPart, Message, TextPart
from chatstream.models.notification import Notification


class TestMessageModels:
    """Tests for messages and parts."""

    def test_message_defaults(self):
        """Test defaults of a new message."""
        message = Message(role="user", content="Hello")

        assert message.id
        assert message.parts is None
        assert message.is_streaming is False
        assert message.error is None
        assert message.metadata is None
        assert message.created_at.tzinfo is not None

    def test_ids_are_unique(self):
        """Test that generated ids differ."""
        assert Message(role="user").id != Message(role="user").id

    def test_invalid_role(self):
        """Test message with invalid role."""
        with pytest.raises(ValidationError) as exc_info:
            Message(role="invalid", content="Hello")  # type: ignore
        assert "Input should be 'user', 'assistant' or 'system'" in str(exc_info.value)

    def test_parts_parsing(self):
        """Test that text parts and other typed parts are told apart."""
        message = Message.model_validate(
            {
                "role": "assistant",
                "parts": [
                    {"type": "text", "text": "Hi", "state": "done"},
                    {"type": "data-weather", "data": {"temp": 21}},
                    {"type": "source", "value": "https://example.com"},
                ],
            }
        )

        assert isinstance(message.parts[0], TextPart)
        assert isinstance(message.parts[1], DataPart)
        assert message.parts[1].data == {"temp": 21}
        assert isinstance(message.parts[2], DataPart)
        assert message.text_parts() == ["Hi"]

    def test_summary_marker(self):
        """Test the reserved summary metadata flag."""
        assert Message(role="system", metadata={"summary": True}).is_summary
        assert not Message(role="system", metadata={"other": 1}).is_summary

    def test_wire_format_uses_parts(self):
        """Test that existing parts are sent as-is."""
        message = Message(role="assistant", content="ab", parts=[TextPart(text="ab")], metadata={"model": "m1"})
        wire = message.to_wire()

        assert wire["parts"] == [{"type": "text", "text": "ab"}]
        assert wire["metadata"] == {"model": "m1"}

    def test_json_round_trip(self):
        """Test that a message survives storage serialization."""
        message = Message(role="assistant", content="x", error="failed", parts=[DataPart(type="data-x", data=[1])])
        restored = Message.model_validate_json(message.model_dump_json())
        assert restored == message


class TestNotificationModel:
    """Tests for notifications."""

    def test_default_level(self):
        """Test that notifications default to info."""
        assert Notification(message="hi").level == "info"

    def test_invalid_level(self):
        """Test that unknown levels are rejected."""
        with pytest.raises(ValidationError):
            Notification(message="hi", level="fatal")  # type: ignore


class TestConversationModels:
    """Tests for conversation and HTTP payload models."""

    def test_record_defaults(self):
        """Test a new conversation record."""
        record = ConversationRecord(id="c1")
        assert record.title == "New Conversation"
        assert record.messages == []

    def test_telemetry_event_keeps_extra_fields(self):
        """Test that telemetry fields beyond the event name are kept."""
        event = TelemetryEvent.model_validate(json.loads('{"event": "error", "error": "boom", "attempt": 2}'))
        assert event.model_dump() == {"event": "error", "error": "boom", "attempt": 2}

    def test_health_response_valid(self):
        """Test valid health response."""
        now = datetime.now(UTC)
        response = HealthResponse(status="healthy", timestamp=now, version="1.0.0")
        assert response.timestamp == now


class TestChatConfig:
    """Tests for configuration."""

    def test_defaults(self):
        """Test documented defaults."""
        config = ChatConfig()
        assert config.visibility_cap == 60
        assert config.max_attempts == 3
        assert config.notification_dismiss_seconds == 5.0
        assert config.default_model == DEFAULT_MODEL == "mistral-large-3"
        assert config.telemetry_enabled is False

    def test_testing_profile_shortens_backoff(self):
        """Test that the test profile only shrinks delays."""
        config = ChatConfig.for_testing()
        assert config.backoff_base < ChatConfig().backoff_base
        assert config.max_attempts == 3

    def test_from_env(self, monkeypatch, tmp_path):
        """Test environment overrides."""
        monkeypatch.setenv("CHATSTREAM_ENDPOINT_URL", "http://example/api/chat")
        monkeypatch.setenv("CHATSTREAM_TELEMETRY", "true")
        monkeypatch.setenv("CHATSTREAM_MODEL", "m9")
        monkeypatch.setenv("CHATSTREAM_STORAGE_PATH", str(tmp_path / "c.json"))
        monkeypatch.setenv("CHATSTREAM_MODE", "test")

        config = ChatConfig.from_env()
        assert config.endpoint_url == "http://example/api/chat"
        assert config.telemetry_enabled is True
        assert config.default_model == "m9"
        assert config.storage_path == tmp_path / "c.json"
        assert config.backoff_base == 0.01

    def test_find_model(self):
        """Test catalog lookup."""
        config = ChatConfig()
        assert config.find_model("gemini-2.5-flash").label == "Gemini 2.5 Flash"
        assert config.find_model("unknown") is None

    def test_invalid_cap(self):
        """Test that a zero visibility cap is rejected."""
        with pytest.raises(ValidationError):
            ChatConfig(visibility_cap=0)
