"""HTTP client for the streaming model exchange endpoint."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from chatstream.config import ChatConfig
from chatstream.models.messages import DataPart, Message
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)


class ExchangeError(Exception):
    """A model exchange failed.

    ``status_code`` is None for failures that carry no HTTP status, which are
    treated as network-level and therefore transient.
    """

    def __init__(self, message: str, status_code: int | None = None, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ExchangeError":
        """Build an error from a non-2xx response, using its ``{error}`` body when present."""
        message = f"Request failed with status {response.status_code}"
        details = None
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            if isinstance(body.get("error"), str):
                message = body["error"]
            if body.get("details") is not None:
                details = str(body["details"])

        return cls(message, status_code=response.status_code, details=details)


@dataclass
class TextDelta:
    """A fragment of assistant text."""

    text: str


@dataclass
class DataEvent:
    """A typed non-text part delivered mid-stream."""

    part: DataPart


StreamEvent = TextDelta | DataEvent


class ChatTransport(Protocol):
    """Anything that can turn a conversation into a stream of events."""

    def stream(self, messages: list[Message], model: str) -> AsyncIterator[StreamEvent]: ...


class ChatStreamClient:
    """Streams assistant responses from the model exchange endpoint.

    Accepts either a server-sent event stream of UI message chunks or a plain
    text stream, depending on the response content type.
    """

    def __init__(self, config: ChatConfig | None = None, client: httpx.AsyncClient | None = None):
        """Initialize stream client.

        Args:
            config: Engine configuration (endpoint URL, timeout)
            client: Preconfigured httpx client, mainly for tests
        """
        self.config = config or ChatConfig()
        self.client = client or httpx.AsyncClient(timeout=self.config.request_timeout)

    async def stream(self, messages: list[Message], model: str) -> AsyncIterator[StreamEvent]:
        """Send the conversation and yield events in arrival order.

        Args:
            messages: Ordered conversation history to send
            model: Opaque model identifier

        Yields:
            Text fragments and data parts

        Raises:
            ExchangeError: On a non-2xx response or an in-stream error event
        """
        body = {"messages": [message.to_wire() for message in messages], "model": model}
        logger.debug(f"Opening stream to {self.config.endpoint_url} with {len(messages)} messages, model {model}")

        async with self.client.stream("POST", self.config.endpoint_url, json=body) as response:
            if response.is_error:
                await response.aread()
                raise ExchangeError.from_response(response)

            content_type = response.headers.get("content-type", "")
            if content_type.startswith("text/event-stream"):
                async for event in self._iter_events(response):
                    yield event
            else:
                async for chunk in response.aiter_text():
                    if chunk:
                        yield TextDelta(chunk)

    async def _iter_events(self, response: httpx.Response) -> AsyncIterator[StreamEvent]:
        """Parse ``data:`` lines of a server-sent event stream."""
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue

            payload = line[len("data:") :].strip()
            if not payload:
                continue
            if payload == "[DONE]":
                return

            try:
                chunk: Any = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed stream chunk: {payload[:80]}")
                continue

            if not isinstance(chunk, dict):
                continue

            kind = chunk.get("type")
            if kind == "text-delta":
                delta = chunk.get("delta")
                if isinstance(delta, str) and delta:
                    yield TextDelta(delta)
            elif isinstance(kind, str) and kind.startswith("data-"):
                yield DataEvent(DataPart(type=kind, data=chunk.get("data")))
            elif kind == "error":
                raise ExchangeError(str(chunk.get("errorText") or "Stream error"))
            elif kind == "finish":
                return

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
