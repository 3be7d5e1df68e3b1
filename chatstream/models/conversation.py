"""Conversation records and HTTP payload models."""

from datetime import datetime

from pydantic import BaseModel, Field

from chatstream.models.messages import Message

DEFAULT_TITLE = "New Conversation"


class ConversationRecord(BaseModel):
    """A stored conversation as listed in the sidebar."""

    id: str
    title: str = DEFAULT_TITLE
    time: str = "Today"
    messages: list[Message] = Field(default_factory=list)


class TelemetryEvent(BaseModel):
    """A telemetry record; any extra fields are kept verbatim."""

    event: str

    class Config:
        extra = "allow"


class TelemetryAck(BaseModel):
    """Response model for the telemetry sink."""

    status: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
