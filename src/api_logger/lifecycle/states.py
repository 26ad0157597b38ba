from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class State(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPING = "stopping"
    EXPORTING = "exporting"
    ERROR = "error"
    RESUMING = "resuming"


Transitions = Mapping[State, frozenset[State]]

TRANSITIONS: Transitions = {
    State.IDLE: frozenset({State.RECORDING}),
    State.RECORDING: frozenset({State.PAUSED, State.STOPPING, State.ERROR}),
    State.PAUSED: frozenset({State.RECORDING, State.STOPPING, State.ERROR}),
    State.STOPPING: frozenset({State.IDLE, State.ERROR}),
    State.EXPORTING: frozenset({State.IDLE, State.ERROR}),
    State.ERROR: frozenset({State.IDLE}),
    State.RESUMING: frozenset({State.RECORDING, State.ERROR}),
}

# Same table plus idle -> exporting, for hosts that route exports through the lifecycle.
LIFECYCLE_EXPORT_TRANSITIONS: Transitions = {
    **TRANSITIONS,
    State.IDLE: frozenset({State.RECORDING, State.EXPORTING}),
}


@dataclass(frozen=True)
class TransitionError:
    from_state: str
    to_state: str
    message: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromState": self.from_state,
            "toState": self.to_state,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> TransitionError:
        return cls(
            from_state=str(value["fromState"]),
            to_state=str(value["toState"]),
            message=str(value.get("message", "")),
            timestamp=int(value.get("timestamp", 0)),
        )


@dataclass
class StateData:
    session_id: str | None = None
    selected_session_id: str | None = None
    start_time: int | None = None
    pause_time: int | None = None
    recorded_requests: list[dict[str, Any]] = field(default_factory=list)
    error: TransitionError | None = None
    last_export: str | None = None

    def to_dict(self, pending_operations: list[str]) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "selectedSessionId": self.selected_session_id,
            "startTime": self.start_time,
            "pauseTime": self.pause_time,
            "recordedRequests": [dict(r) for r in self.recorded_requests],
            "pendingOperations": list(pending_operations),
            "error": self.error.to_dict() if self.error else None,
            "lastExport": self.last_export,
        }

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> StateData:
        error = value.get("error")
        return cls(
            session_id=value.get("sessionId"),
            selected_session_id=value.get("selectedSessionId"),
            start_time=value.get("startTime"),
            pause_time=value.get("pauseTime"),
            recorded_requests=[dict(r) for r in value.get("recordedRequests") or []],
            error=TransitionError.from_dict(error) if error else None,
            last_export=value.get("lastExport"),
        )


@dataclass(frozen=True)
class StateSnapshot:
    current_state: State
    session_id: str | None
    selected_session_id: str | None
    start_time: int | None
    pause_time: int | None
    recorded_requests: tuple[dict[str, Any], ...]
    pending_operations: tuple[str, ...]
    error: TransitionError | None
    last_export: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentState": self.current_state.value,
            "sessionId": self.session_id,
            "selectedSessionId": self.selected_session_id,
            "startTime": self.start_time,
            "pauseTime": self.pause_time,
            "recordedRequests": [dict(r) for r in self.recorded_requests],
            "pendingOperations": list(self.pending_operations),
            "error": self.error.to_dict() if self.error else None,
            "lastExport": self.last_export,
        }


Guard = Callable[[State, StateData], bool]


def _can_record(source: State, data: StateData) -> bool:
    return source in (State.IDLE, State.ERROR, State.PAUSED, State.RESUMING)


def _can_pause(source: State, data: StateData) -> bool:
    return source is State.RECORDING


def _can_stop(source: State, data: StateData) -> bool:
    return source in (State.RECORDING, State.PAUSED, State.ERROR)


def _can_export(source: State, data: StateData) -> bool:
    return source is State.IDLE and data.selected_session_id is not None


def _always(source: State, data: StateData) -> bool:
    return True


def _never(source: State, data: StateData) -> bool:
    return False


GUARDS: Mapping[State, Guard] = {
    State.IDLE: _always,
    State.RECORDING: _can_record,
    State.PAUSED: _can_pause,
    State.STOPPING: _can_stop,
    State.EXPORTING: _can_export,
    State.ERROR: _always,
    # Only entered by restoring a persisted snapshot.
    State.RESUMING: _never,
}
