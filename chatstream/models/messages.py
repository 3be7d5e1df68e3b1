"""Message and message part models."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

cuid = cuid_wrapper()

Role = Literal["user", "assistant", "system"]


def new_id() -> str:
    """Generate a new CUID-based message identifier."""
    return cuid()


class TextPart(BaseModel):
    """Text fragment of a message."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"


class DataPart(BaseModel):
    """Any non-text fragment (``data-*``, ``source``, ...), kept opaque."""

    type: str
    data: Any = None

    class Config:
        extra = "allow"


# Text parts are tried first so that anything else, including malformed text parts, stays opaque
MessagePart = Annotated[TextPart | DataPart, Field(union_mode="left_to_right")]


class Message(BaseModel):
    """A message in a conversation."""

    id: str = Field(default_factory=new_id)
    role: Role
    content: str = ""
    parts: list[MessagePart] | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_streaming: bool = False
    error: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_summary(self) -> bool:
        """Whether this is the synthetic message left behind by a trim."""
        return bool(self.metadata and self.metadata.get("summary"))

    def text_parts(self) -> list[str]:
        """Return the text of all text-typed parts, in order."""
        return [part.text for part in self.parts or [] if isinstance(part, TextPart)]

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the model exchange endpoint."""
        parts = self.parts if self.parts else [TextPart(text=self.content)]
        payload: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "parts": [part.model_dump() for part in parts],
        }
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


@dataclass
class VisibleWindow:
    """The rendered suffix of a conversation."""

    messages: list[Message]
    archived_count: int
