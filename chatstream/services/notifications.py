"""User-facing notifications and the retry affordance."""

import asyncio
from collections.abc import Awaitable, Callable

from chatstream.models.notification import Notification, NotificationLevel
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)

RetryAction = Callable[[], Awaitable[None]]


class NotificationCenter:
    """Holds at most one notification plus the action to run on retry.

    Error notifications stay until retried or dismissed. Info and warning
    notifications are dismissed after ``dismiss_seconds`` unless superseded.
    The retry action lives here, outside any persisted state.
    """

    def __init__(self, dismiss_seconds: float = 5.0, on_expire: Callable[[], None] | None = None):
        """Initialize notification center.

        Args:
            dismiss_seconds: Auto-dismiss delay for non-error notifications
            on_expire: Called when a notification is auto-dismissed, since no
                caller operation is around to report that change
        """
        self.dismiss_seconds = dismiss_seconds
        self.on_expire = on_expire
        self.current: Notification | None = None
        self._retry: RetryAction | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def has_retry(self) -> bool:
        return self._retry is not None

    def notify(self, message: str, level: NotificationLevel = "info") -> Notification:
        """Show a notification, superseding any current one."""
        self._cancel_timer()
        notification = Notification(message=message, level=level)
        self.current = notification

        if level != "error":
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop, notification will not auto-dismiss")
            else:
                self._timer = loop.call_later(self.dismiss_seconds, self._expire, notification)

        return notification

    def error(self, message: str, retry: RetryAction | None = None) -> Notification:
        """Show a persistent error and arm ``retry`` as the recovery action."""
        notification = self.notify(message, "error")
        if retry is not None:
            self._retry = retry
        return notification

    def dismiss(self) -> None:
        self._cancel_timer()
        self.current = None

    def clear_retry(self) -> None:
        self._retry = None

    def reset(self) -> None:
        """Drop the notification, its timer and the armed retry action."""
        self.dismiss()
        self.clear_retry()

    async def retry_last(self, fallback: RetryAction) -> None:
        """Run the armed retry action, or ``fallback`` when none is armed."""
        action = self._retry or fallback
        await action()

    def _expire(self, notification: Notification) -> None:
        if self.current is not notification:
            return
        self._timer = None
        self.current = None
        if self.on_expire is not None:
            self.on_expire()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
