"""Shared fakes for session engine tests."""

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest

from chatstream.clients.stream import StreamEvent, TextDelta
from chatstream.config import ChatConfig
from chatstream.models.messages import Message
from chatstream.services.session import ChatSession


class ScriptedTransport:
    """Plays back one script per exchange attempt.

    A script is either an exception raised when the stream opens, or a list of
    items: strings become text fragments, events are yielded as-is,
    exceptions are raised mid-stream and ``asyncio.Event`` gates pause the
    stream until set.
    """

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.calls: list[tuple[list[Message], str]] = []

    def add(self, *scripts) -> None:
        self.scripts.extend(scripts)

    async def stream(self, messages: list[Message], model: str) -> AsyncIterator[StreamEvent]:
        self.calls.append(([message.model_copy(deep=True) for message in messages], model))
        script = self.scripts.pop(0) if self.scripts else []
        if isinstance(script, BaseException):
            raise script

        for item in script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield TextDelta(item) if isinstance(item, str) else item


class TickingClock:
    """Millisecond clock that advances a fixed step on every read."""

    def __init__(self, step: float = 10.0):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def wait_until(condition: Callable[[], bool], steps: int = 200) -> None:
    """Yield to the event loop until ``condition`` holds."""
    for _ in range(steps):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def config() -> ChatConfig:
    return ChatConfig.for_testing(default_model="m1", notification_dismiss_seconds=0.05)


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def session(transport, config, sleep) -> ChatSession:
    return ChatSession(transport, config, clock=TickingClock(), sleep=sleep)
