from api_logger.lifecycle.events import (
    ErrorOccurred,
    EventBus,
    ExportStarted,
    LifecycleEvent,
    RecordingPaused,
    RecordingResumed,
    RecordingStarted,
    RecordingStopped,
    StateChanged,
    StateRecovered,
    to_message,
)
from api_logger.lifecycle.machine import STALE_AFTER_MS, OperationLocks, RecordingStateMachine
from api_logger.lifecycle.states import (
    GUARDS,
    LIFECYCLE_EXPORT_TRANSITIONS,
    TRANSITIONS,
    State,
    StateData,
    StateSnapshot,
    TransitionError,
)

__all__ = [
    "ErrorOccurred",
    "EventBus",
    "ExportStarted",
    "GUARDS",
    "LIFECYCLE_EXPORT_TRANSITIONS",
    "LifecycleEvent",
    "OperationLocks",
    "RecordingPaused",
    "RecordingResumed",
    "RecordingStarted",
    "RecordingStateMachine",
    "RecordingStopped",
    "STALE_AFTER_MS",
    "StateChanged",
    "StateData",
    "StateRecovered",
    "StateSnapshot",
    "TRANSITIONS",
    "TransitionError",
    "State",
    "to_message",
]
