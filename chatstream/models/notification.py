"""User-facing notification model."""

from typing import Literal

from pydantic import BaseModel

NotificationLevel = Literal["info", "warning", "error"]


class Notification(BaseModel):
    """A transient status or error message shown to the user."""

    message: str
    level: NotificationLevel = "info"
