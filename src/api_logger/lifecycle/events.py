from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, TypeVar, Union

from loguru import logger


@dataclass(frozen=True)
class StateChanged:
    name: ClassVar[str] = "stateChanged"
    from_state: str
    to_state: str
    state_data: dict[str, Any]


@dataclass(frozen=True)
class RecordingStarted:
    name: ClassVar[str] = "recordingStarted"
    session_id: str


@dataclass(frozen=True)
class RecordingPaused:
    name: ClassVar[str] = "recordingPaused"
    pause_time: int


@dataclass(frozen=True)
class RecordingResumed:
    name: ClassVar[str] = "recordingResumed"
    pause_duration: int


@dataclass(frozen=True)
class RecordingStopped:
    name: ClassVar[str] = "recordingStopped"
    session_id: str | None
    request_count: int


@dataclass(frozen=True)
class ExportStarted:
    name: ClassVar[str] = "exportStarted"
    session_id: str
    request_count: int


@dataclass(frozen=True)
class ErrorOccurred:
    name: ClassVar[str] = "error"
    from_state: str
    to_state: str
    message: str
    timestamp: int


@dataclass(frozen=True)
class StateRecovered:
    name: ClassVar[str] = "stateRecovered"
    recovered_state: str


LifecycleEvent = Union[
    StateChanged,
    RecordingStarted,
    RecordingPaused,
    RecordingResumed,
    RecordingStopped,
    ExportStarted,
    ErrorOccurred,
    StateRecovered,
]

E = TypeVar("E")
Handler = Callable[[Any], Union[None, Awaitable[None]]]


def to_message(event: LifecycleEvent) -> dict[str, Any]:
    """Wire form used by the broadcast channel: ``{"event": name, camelCaseFields...}``."""
    payload = {_camel(key): value for key, value in asdict(event).items()}
    return {"event": event.name, **payload}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class EventBus:
    """Fire-and-forget dispatch of lifecycle events to typed listeners.

    Handler failures are logged and never reach the emitter. Coroutine
    handlers are scheduled on the running loop and not awaited.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[Handler]] = {}
        self._catch_all: list[Handler] = []
        self._tasks: set[asyncio.Task] = set()

    def add_listener(self, event_type: type[E], handler: Callable[[E], Any]) -> None:
        self._listeners.setdefault(event_type, []).append(handler)

    def remove_listener(self, event_type: type[E], handler: Callable[[E], Any]) -> None:
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribe(self, handler: Callable[[LifecycleEvent], Any]) -> None:
        self._catch_all.append(handler)

    def emit(self, event: LifecycleEvent) -> None:
        for handler in [*self._listeners.get(type(event), []), *self._catch_all]:
            try:
                result = handler(event)
            except Exception:
                logger.exception(f"Error in {event.name} listener")
                continue
            if inspect.isawaitable(result):
                self._schedule(event.name, result)

    def _schedule(self, event_name: str, awaitable: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop for async {event_name} listener, event dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.opt(exception=t.exception()).error(f"Error in async {event_name} listener")

        task.add_done_callback(_done)
