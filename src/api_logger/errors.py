from __future__ import annotations


class RecorderError(Exception):
    """Base class for every failure raised by the recorder core."""


class InvalidTransition(RecorderError):
    def __init__(self, from_state: str, to_state: str):
        super().__init__(f"Invalid transition from {from_state} to {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class OperationInProgress(RecorderError):
    def __init__(self, operation_id: str):
        super().__init__(f"Operation {operation_id} already in progress")
        self.operation_id = operation_id


class GuardFailed(RecorderError):
    def __init__(self, to_state: str, reason: str = ""):
        message = f"Guard failed for transition to {to_state}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.to_state = to_state


class SideEffectFailure(RecorderError):
    """A state action (capture attach, export delivery, ...) raised."""


class RecoveryPending(RecorderError):
    def __init__(self) -> None:
        super().__init__("State machine has not recovered its persisted state yet")


class NotFound(RecorderError, LookupError):
    def __init__(self, kind: str, identifier: str | int):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class SessionNotFound(NotFound):
    def __init__(self, session_id: str):
        super().__init__("Session", session_id)
