"""Send pipeline: failure classification and bounded retry with backoff."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from chatstream.clients.telemetry import TelemetryClient
from chatstream.config import ChatConfig
from chatstream.services.notifications import NotificationCenter, RetryAction
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(StrEnum):
    """How a failed exchange should be treated."""

    TRANSIENT_NETWORK = "transient_network"
    TRANSIENT_SERVER = "transient_server"
    FATAL_CLIENT = "fatal_client"


def error_status(error: BaseException) -> Any:
    """Status code carried by an error, directly or on its response."""
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status


def classify_error(error: BaseException) -> ErrorKind:
    """Classify a failure.

    No status code means a network-level failure. 429 and 5xx are server-side
    and worth retrying. Any other code, or one that is not numeric, is fatal.
    """
    status = error_status(error)
    if status is None:
        return ErrorKind.TRANSIENT_NETWORK

    try:
        code = int(status)
    except (TypeError, ValueError):
        return ErrorKind.FATAL_CLIENT

    if code == 429 or code >= 500:
        return ErrorKind.TRANSIENT_SERVER
    return ErrorKind.FATAL_CLIENT


def is_transient(error: BaseException) -> bool:
    return classify_error(error) is not ErrorKind.FATAL_CLIENT


def describe_error(error: BaseException) -> str:
    """User-visible description of a failure."""
    message = getattr(error, "message", None) or str(error)
    return message or "Failed to send message"


class SendFailedError(Exception):
    """An exchange failed fatally or ran out of attempts."""

    def __init__(self, cause: BaseException, attempts: int):
        super().__init__(describe_error(cause))
        self.cause = cause
        self.attempts = attempts
        self.kind = classify_error(cause)


class SendPipeline:
    """Runs an exchange with up to ``max_attempts`` tries.

    Transient failures are retried after ``backoff_base * 2**attempt`` plus
    uniform jitter. Fatal failures, and transient ones once attempts run out,
    raise an error notification with a retry action bound to the same send.
    """

    def __init__(
        self,
        config: ChatConfig,
        notifications: NotificationCenter,
        telemetry: TelemetryClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """Initialize send pipeline.

        Args:
            config: Retry policy settings
            notifications: Where terminal failures are surfaced
            telemetry: Optional telemetry client
            sleep: Backoff sleep, injectable for tests
            rng: Jitter source, injectable for tests
        """
        self.config = config
        self.notifications = notifications
        self.telemetry = telemetry
        self.sleep = sleep
        self.rng = rng or random.Random()

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before the retry that follows failed attempt number ``attempt``."""
        return self.config.backoff_base * (2**attempt) + self.rng.uniform(0, self.config.backoff_jitter)

    async def send(
        self,
        operation: Callable[[], Awaitable[None]],
        retry: RetryAction,
        can_retry: Callable[[], bool] = lambda: True,
    ) -> int:
        """Execute ``operation`` with retry.

        Args:
            operation: One network exchange attempt
            retry: Action armed for user-initiated retry on terminal failure
            can_retry: Checked after a transient failure; False escalates at once

        Returns:
            Number of attempts used

        Raises:
            SendFailedError: On a fatal failure or after the last attempt
        """
        attempt = 0
        while True:
            try:
                await operation()
            except Exception as e:
                attempt += 1
                transient = is_transient(e)
                if self.telemetry is not None:
                    self.telemetry.emit("send_error", error=str(e), transient=transient, attempt=attempt)

                if not transient or attempt >= self.config.max_attempts or not can_retry():
                    logger.error(f"Send failed after {attempt} attempt(s) ({classify_error(e)}): {e}")
                    self.notifications.error(describe_error(e), retry=retry)
                    raise SendFailedError(e, attempt) from e

                delay = self.backoff_delay(attempt)
                logger.warning(f"Transient send failure on attempt {attempt}: {e}; retrying in {delay:.3f}s")
                await self.sleep(delay)
                continue

            self.notifications.clear_retry()
            return attempt + 1
