"""Streaming chat session: the state machine that drives one exchange at a time."""

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from chatstream.clients.stream import ChatTransport, DataEvent, TextDelta
from chatstream.clients.telemetry import TelemetryClient
from chatstream.config import ChatConfig
from chatstream.models.messages import DataPart, Message
from chatstream.models.notification import Notification
from chatstream.models.stats import StreamStats
from chatstream.services.message_store import MessageStore
from chatstream.services.metrics import MetricsCollector, monotonic_ms
from chatstream.services.notifications import NotificationCenter
from chatstream.services.send_pipeline import SendFailedError, SendPipeline
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)

Observer = Callable[["ChatSession"], None]


class SessionStatus(StrEnum):
    """Lifecycle of an exchange. DONE and ERRORED accept new sends like IDLE."""

    IDLE = "idle"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class _Exchange:
    """Bookkeeping for the one in-flight exchange."""

    prompt: Message
    model_id: str
    assistant_id: str | None = None
    task: asyncio.Task[None] | None = None
    stopped: bool = False


class ChatSession:
    """Owns conversation state for one chat and runs exchanges against a transport.

    At most one exchange is in flight. Fragments are merged in arrival order,
    stats are updated on every merge, and terminal failures arm a retry action.
    Observers are called once per committed change.
    """

    def __init__(
        self,
        transport: ChatTransport,
        config: ChatConfig | None = None,
        telemetry: TelemetryClient | None = None,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """Initialize chat session.

        Args:
            transport: Source of streamed responses
            config: Engine configuration
            telemetry: Optional telemetry client (only used when enabled)
            clock: Millisecond clock for stream stats
            sleep: Backoff sleep used by the send pipeline
            rng: Jitter source used by the send pipeline
        """
        self.config = config or ChatConfig()
        self.transport = transport
        self.telemetry = telemetry

        self.store = MessageStore()
        self.metrics = MetricsCollector(clock)
        self.notifications = NotificationCenter(self.config.notification_dismiss_seconds, on_expire=self._commit)
        self.pipeline = SendPipeline(self.config, self.notifications, telemetry, sleep=sleep, rng=rng)

        self.model_id = self.config.default_model
        self.status = SessionStatus.IDLE
        self.online = True
        self.error: str | None = None

        self._exchange: _Exchange | None = None
        self._observers: list[Observer] = []

    @property
    def is_busy(self) -> bool:
        """Whether an exchange is in flight."""
        return self.status in (SessionStatus.SUBMITTED, SessionStatus.STREAMING)

    @property
    def messages(self) -> list[Message]:
        """Visible messages, capped at the configured visibility cap."""
        return self.store.visible_window(self.config.visibility_cap).messages

    @property
    def archived_count(self) -> int:
        return self.store.visible_window(self.config.visibility_cap).archived_count

    @property
    def all_messages(self) -> list[Message]:
        return self.store.messages

    @property
    def stream_stats(self) -> StreamStats | None:
        return self.metrics.stats

    @property
    def notification(self) -> Notification | None:
        return self.notifications.current

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a change observer.

        Returns:
            Callable that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _commit(self) -> None:
        """Notify observers. A failing observer is logged and never reaches the exchange."""
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception as e:
                logger.error(f"Observer {observer!r} failed: {e}", exc_info=True)

    def set_model(self, model_id: str) -> None:
        """Select the model for subsequent exchanges. In-flight stats keep their model."""
        self.model_id = model_id
        self._commit()

    async def send_message(self, text: str) -> None:
        """Send user text. Empty text, or a send while busy, is ignored."""
        trimmed = text.strip()
        if not trimmed or self.is_busy:
            return
        await self.append(Message(role="user", content=trimmed))

    async def append(self, message: Message) -> None:
        """Send a prepared message and stream the assistant's reply.

        A message already present in the history is not appended again; only a
        new assistant response is requested after it.
        """
        if self.is_busy:
            logger.debug("Exchange already in progress, ignoring send")
            return
        await self._run_exchange(message)

    async def regenerate(self, replace: bool = False) -> None:
        """Request a new reply to the user message behind the latest assistant message.

        Args:
            replace: Drop everything after that user message first instead of
                appending the new reply after the old one
        """
        if self.is_busy:
            return

        prompt = self.store.last_exchange_prompt()
        if prompt is None:
            logger.info("Nothing to regenerate")
            return

        if replace:
            self.store.discard_after(prompt.id)
        await self._run_exchange(prompt)

    async def retry_last(self) -> None:
        """Run the armed retry action, falling back to regenerating the last exchange."""
        if self.is_busy:
            return

        self.notifications.dismiss()
        self._commit()
        await self.notifications.retry_last(fallback=self.regenerate)

    def stop(self) -> None:
        """Cancel the in-flight exchange, keeping any partial reply as-is."""
        if self._stop_exchange():
            self._commit()

    def reset(self) -> None:
        """Start an empty conversation."""
        self._stop_exchange()
        self.store.reset()
        self.metrics.clear()
        self.notifications.reset()
        self.status = SessionStatus.IDLE
        self.error = None
        logger.info("Conversation reset")
        self._commit()

    def load(self, messages: Iterable[Message]) -> None:
        """Replace the conversation, e.g. when switching to a stored one."""
        self._stop_exchange()
        self.store.load(messages)
        self.metrics.clear()
        self.notifications.reset()
        self.status = SessionStatus.IDLE
        self.error = None
        logger.info(f"Loaded conversation with {len(self.store)} messages")
        self._commit()

    def trim(self, keep: int | None = None) -> bool:
        """Collapse older history into a summary marker, keeping the last ``keep`` messages.

        Irreversible; callers confirm with the user first.
        """
        keep = self.config.trim_keep if keep is None else keep
        if keep < 0:
            raise ValueError(f"keep must be non-negative, got {keep}")
        self._stop_exchange()
        self.metrics.clear()
        trimmed = self.store.trim(keep)
        self._commit()
        return trimmed

    def dismiss_notification(self) -> None:
        self.notifications.dismiss()
        self._commit()

    def set_online(self, online: bool) -> None:
        """Record a connectivity change and tell the user about it."""
        if online == self.online:
            return
        self.online = online
        if online:
            self.notifications.notify("Back online", "info")
        else:
            self.notifications.notify("You appear to be offline", "warning")
        self._commit()

    async def _run_exchange(self, prompt: Message) -> None:
        if self.store.get(prompt.id) is None:
            self.store.append(prompt)

        exchange = _Exchange(prompt=prompt, model_id=self.model_id)
        self._exchange = exchange
        self.metrics.begin(exchange.model_id)
        self.status = SessionStatus.SUBMITTED
        self.error = None
        logger.info(f"Submitting exchange for message {prompt.id} with model {exchange.model_id}")
        try:
            self._commit()
        except BaseException:
            self._stop_exchange()
            raise
        if exchange.stopped:
            # An observer stopped the exchange before the request went out
            return

        exchange.task = asyncio.create_task(self._execute(exchange))
        try:
            await exchange.task
        except asyncio.CancelledError:
            if exchange.stopped:
                return
            # The caller itself was cancelled; leave the session idle behind it
            self.stop()
            raise

    async def _execute(self, exchange: _Exchange) -> None:
        history = self.store.history_through(exchange.prompt.id)
        prompt = exchange.prompt

        async def attempt() -> None:
            await self._stream_once(exchange, history)

        async def retry() -> None:
            await self.append(prompt)

        try:
            await self.pipeline.send(attempt, retry=retry, can_retry=lambda: exchange.assistant_id is None)
        except SendFailedError as e:
            self._fail(exchange, e)
            return

        self._finish(exchange)

    async def _stream_once(self, exchange: _Exchange, history: list[Message]) -> None:
        async for event in self.transport.stream(history, exchange.model_id):
            if self._exchange is not exchange:
                return
            if isinstance(event, TextDelta):
                self._merge_text(exchange, event.text)
            elif isinstance(event, DataEvent):
                self._merge_part(exchange, event.part)

    def _ensure_assistant(self, exchange: _Exchange) -> str:
        if exchange.assistant_id is None:
            message = self.store.append(Message(role="assistant"))
            self.store.set_streaming(message.id, True)
            exchange.assistant_id = message.id
            self.status = SessionStatus.STREAMING
        return exchange.assistant_id

    def _merge_text(self, exchange: _Exchange, text: str) -> None:
        if not text:
            return
        assistant_id = self._ensure_assistant(exchange)
        if self.store.merge_streaming_delta(assistant_id, text):
            self.metrics.observe(self.store.last)
            self._commit()

    def _merge_part(self, exchange: _Exchange, part: DataPart) -> None:
        assistant_id = self._ensure_assistant(exchange)
        self.store.add_part(assistant_id, part)

        if part.type == "data-notification":
            try:
                notification = Notification.model_validate(part.data)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed notification part: {e}")
            else:
                self.notifications.notify(notification.message, notification.level)
        self._commit()

    def _finish(self, exchange: _Exchange) -> None:
        if self._exchange is not exchange:
            return

        message = self.store.get(exchange.assistant_id) if exchange.assistant_id else None
        self.store.clear_streaming()
        stats = self.metrics.finish(message)
        self._exchange = None
        self.status = SessionStatus.DONE

        if stats is not None:
            logger.info(f"Exchange finished: {stats.describe()}")
            if self.telemetry is not None:
                self.telemetry.emit(
                    "stream_finish", model=stats.model_id, durationMs=stats.duration_ms, tokens=stats.tokens
                )
        self._commit()

    def _fail(self, exchange: _Exchange, failure: SendFailedError) -> None:
        if self._exchange is not exchange:
            return

        message = str(failure)
        self.store.clear_streaming()
        if exchange.assistant_id is not None:
            self.store.attach_error(exchange.assistant_id, message)
        self._exchange = None
        self.status = SessionStatus.ERRORED
        self.error = message

        if self.telemetry is not None:
            self.telemetry.emit("error", error=message)
        self._commit()

    def _stop_exchange(self) -> bool:
        """Cancel the in-flight exchange without notifying observers."""
        exchange = self._exchange
        if exchange is None:
            return False

        exchange.stopped = True
        self._exchange = None
        if exchange.task is not None and not exchange.task.done():
            exchange.task.cancel()

        self.store.clear_streaming()
        self.status = SessionStatus.IDLE
        logger.info(f"Stopped exchange for message {exchange.prompt.id}")
        return True
