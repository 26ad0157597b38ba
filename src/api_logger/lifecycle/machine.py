from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from loguru import logger

from api_logger.capture.normalizer import MAX_BODY_SIZE, normalize_transaction
from api_logger.capture.source import CaptureController
from api_logger.errors import (
    GuardFailed,
    InvalidTransition,
    OperationInProgress,
    RecorderError,
    RecoveryPending,
    SessionNotFound,
    SideEffectFailure,
)
from api_logger.export.serializer import ExportSerializer, suggest_filename
from api_logger.export.sink import ExportSink
from api_logger.lifecycle.events import (
    ErrorOccurred,
    EventBus,
    ExportStarted,
    RecordingPaused,
    RecordingResumed,
    RecordingStarted,
    RecordingStopped,
    StateChanged,
    StateRecovered,
)
from api_logger.logging_config import NO_SESSION
from api_logger.lifecycle.states import (
    GUARDS,
    TRANSITIONS,
    State,
    StateData,
    StateSnapshot,
    TransitionError,
    Transitions,
)
from api_logger.storage.sessions import SessionStore
from api_logger.storage.snapshots import SnapshotStore
from api_logger.timeutil import now_ms

STALE_AFTER_MS = 5 * 60 * 1000


class OperationLocks:
    """Per-operation-id locks; holding an id twice raises ``OperationInProgress``."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    @property
    def held(self) -> list[str]:
        return sorted(self._held)

    @contextmanager
    def hold(self, operation_id: str | None) -> Iterator[None]:
        if operation_id is None:
            yield
            return
        if operation_id in self._held:
            raise OperationInProgress(operation_id)
        self._held.add(operation_id)
        try:
            yield
        finally:
            self._held.discard(operation_id)


@dataclass(frozen=True)
class _RecordingTarget:
    session_id: str | None
    name: str | None


class RecordingStateMachine:
    """Lifecycle of the recording for the currently selected session.

    The machine is the only component that admits calls into the store:
    ``add_request`` accepts a transaction only while the state is
    ``recording``. Every transition is checked against the transition table
    and the target's guard before any side effect runs, and the resulting
    snapshot is persisted so that ``recover`` can restore it after a restart.
    """

    def __init__(
        self,
        sessions: SessionStore,
        snapshots: SnapshotStore,
        *,
        capture: CaptureController,
        serializer: ExportSerializer | None = None,
        export_sink: ExportSink | None = None,
        events: EventBus | None = None,
        transitions: Transitions = TRANSITIONS,
        stale_after_ms: int = STALE_AFTER_MS,
        max_body_size: int = MAX_BODY_SIZE,
    ):
        self._sessions = sessions
        self._snapshots = snapshots
        self._capture = capture
        self._serializer = serializer
        self._export_sink = export_sink
        self._events = events or EventBus()
        self._transitions = transitions
        self._stale_after_ms = stale_after_ms
        self._max_body_size = max_body_size

        self._state = State.IDLE
        self._data = StateData()
        self._operations = OperationLocks()
        self._recovered = False
        self._target: _RecordingTarget | None = None

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def current_state(self) -> State:
        return self._state

    @property
    def recovered(self) -> bool:
        return self._recovered

    def can_transition(self, target: State | str) -> bool:
        try:
            return State(target) in self._transitions.get(self._state, frozenset())
        except ValueError:
            return False

    def add_event_listener(self, event_type: type, handler: Any) -> None:
        self._events.add_listener(event_type, handler)

    def remove_event_listener(self, event_type: type, handler: Any) -> None:
        self._events.remove_listener(event_type, handler)

    def get_state(self) -> StateSnapshot:
        return StateSnapshot(
            current_state=self._state,
            session_id=self._data.session_id,
            selected_session_id=self._data.selected_session_id,
            start_time=self._data.start_time,
            pause_time=self._data.pause_time,
            recorded_requests=tuple(dict(r) for r in self._data.recorded_requests),
            pending_operations=tuple(self._operations.held),
            error=self._data.error,
            last_export=self._data.last_export,
        )

    def prepare_recording(self, *, session_id: str | None = None, name: str | None = None) -> None:
        """Choose what the next idle -> recording transition records into.

        With ``session_id`` the existing session is resumed and new calls are
        appended after its last ``seq``; otherwise a new session named
        ``name`` is created.
        """
        self._ensure_recovered()
        if self._state not in (State.IDLE, State.ERROR):
            raise GuardFailed(State.RECORDING.value, f"cannot select a session while {self._state.value}")
        if session_id is not None and self._sessions.get_session(session_id) is None:
            raise SessionNotFound(session_id)
        self._target = _RecordingTarget(session_id=session_id, name=name)

    def select_session(self, session_id: str) -> None:
        self._ensure_recovered()
        if self._state is not State.IDLE:
            raise GuardFailed(State.EXPORTING.value, f"cannot select a session while {self._state.value}")
        if self._sessions.get_session(session_id) is None:
            raise SessionNotFound(session_id)
        self._data.selected_session_id = session_id

    async def transition(self, target: State | str, operation_id: str | None = None) -> None:
        """Move to ``target``, running its side effects.

        The table check comes before the operation lock, so a repeated
        ``operation_id`` only raises ``OperationInProgress`` while the first
        call is still suspended inside its side effects or persistence. Once
        that call has completed, a retry is judged against the new state and
        usually fails with ``InvalidTransition``. Calls without an id are not
        deduplicated at all.
        """
        self._ensure_recovered()
        from_state = self._state
        try:
            to_state = State(target)
        except ValueError:
            raise InvalidTransition(from_state.value, str(target)) from None

        if to_state not in self._transitions.get(from_state, frozenset()):
            raise InvalidTransition(from_state.value, to_state.value)

        with self._operations.hold(operation_id), logger.contextualize(session=self._data.session_id or NO_SESSION):
            try:
                if not GUARDS[to_state](from_state, self._data):
                    raise GuardFailed(to_state.value)
                await self._execute(from_state, to_state)
                self._state = to_state
                await self._persist()
            except Exception as ex:
                logger.error(f"State transition failed: {from_state.value} -> {to_state.value}: {ex}")
                await self._fail(from_state, to_state, ex)
                if isinstance(ex, RecorderError):
                    raise
                raise SideEffectFailure(str(ex)) from ex

            logger.info(f"State transition: {from_state.value} -> {to_state.value}")
            self._events.emit(
                StateChanged(
                    from_state=from_state.value,
                    to_state=to_state.value,
                    state_data=self._data.to_dict(self._operations.held),
                )
            )

    def add_request(self, raw: dict[str, Any]) -> bool:
        if not self._recovered or self._state is not State.RECORDING or self._data.session_id is None:
            return False

        call = self._sessions.add_call(self._data.session_id, normalize_transaction(raw, self._max_body_size))
        self._data.recorded_requests.append(
            {
                "id": call.id,
                "seq": call.seq,
                "method": call.method,
                "url": call.url,
                "status": call.status,
                "timestamp": call.timestamp,
                "sessionId": call.session_id,
            }
        )
        return True

    async def recover(self) -> StateSnapshot:
        try:
            persisted = await self._snapshots.read()
        except Exception as ex:
            logger.warning(f"Failed to read persisted recording state, resetting: {ex}")
            await self._reset_to_idle()
            return self._mark_recovered()

        if persisted is None:
            return self._mark_recovered()

        timestamp = persisted.get("timestamp")
        if not isinstance(timestamp, (int, float)) or now_ms() - timestamp >= self._stale_after_ms:
            logger.info("Persisted recording state is stale, resetting to idle")
            await self._reset_to_idle()
            return self._mark_recovered()

        try:
            state = State(persisted["currentState"])
            data = StateData.from_dict(persisted.get("stateData") or {})
        except (KeyError, TypeError, ValueError) as ex:
            logger.warning(f"Persisted recording state is malformed, resetting: {ex}")
            await self._reset_to_idle()
            return self._mark_recovered()

        self._state = state
        self._data = data
        snapshot = self._mark_recovered()
        logger.info(f"Recording state recovered: {state.value}")
        if state is State.RECORDING:
            self._events.emit(StateRecovered(recovered_state=state.value))
        return snapshot

    def _mark_recovered(self) -> StateSnapshot:
        self._recovered = True
        return self.get_state()

    def _ensure_recovered(self) -> None:
        if not self._recovered:
            raise RecoveryPending()

    async def _execute(self, from_state: State, to_state: State) -> None:
        if to_state is State.RECORDING:
            if from_state in (State.PAUSED, State.RESUMING):
                await self._resume_recording(from_state)
            else:
                await self._start_recording()
        elif to_state is State.PAUSED:
            self._pause_recording()
        elif to_state is State.STOPPING:
            await self._stop_recording()
        elif to_state is State.EXPORTING:
            await self._export_selected()
        elif to_state is State.IDLE:
            if from_state is State.STOPPING:
                self._finalize_stop()
            elif from_state is State.ERROR:
                self._data.error = None
                await self._abandon_recording()
                self._finalize_stop()
        elif to_state is State.ERROR:
            logger.error(f"Recording entered error state from {from_state.value}")

    async def _start_recording(self) -> None:
        target, self._target = self._target, None
        if target is not None and target.session_id is not None:
            session = self._sessions.update_session(target.session_id, status="active")
        else:
            session = self._sessions.create_session(target.name if target else None)

        self._data.session_id = session.id
        self._data.selected_session_id = session.id
        self._data.start_time = now_ms()
        self._data.pause_time = None
        self._data.recorded_requests = []

        source_url = await self._capture.attach(session.id)
        if source_url:
            self._sessions.update_session(session.id, source_url=source_url)
        self._events.emit(RecordingStarted(session_id=session.id))

    async def _resume_recording(self, from_state: State) -> None:
        now = now_ms()
        pause_duration = now - self._data.pause_time if self._data.pause_time is not None else 0
        self._data.pause_time = None
        if self._data.session_id is not None:
            if from_state is State.RESUMING:
                await self._capture.attach(self._data.session_id)
            self._sessions.update_session(self._data.session_id, status="active")
        self._events.emit(RecordingResumed(pause_duration=pause_duration))

    def _pause_recording(self) -> None:
        self._data.pause_time = now_ms()
        if self._data.session_id is not None:
            self._sessions.update_session(self._data.session_id, status="paused")
        self._events.emit(RecordingPaused(pause_time=self._data.pause_time))

    async def _stop_recording(self) -> None:
        session_id = self._data.session_id
        if session_id is not None:
            await self._capture.detach(session_id)
            self._sessions.update_session(session_id, status="stopped")
        self._events.emit(
            RecordingStopped(session_id=session_id, request_count=len(self._data.recorded_requests))
        )

    async def _abandon_recording(self) -> None:
        """Release capture and close out a session left open by a failure."""
        session_id = self._data.session_id
        if session_id is None:
            return
        try:
            await self._capture.detach(session_id)
        except Exception as ex:
            logger.warning(f"Failed to detach capture from abandoned session {session_id}: {ex}")
        if self._sessions.get_session(session_id) is not None:
            self._sessions.update_session(session_id, status="stopped")
        logger.info(f"Abandoned session stopped: {session_id}")

    def _finalize_stop(self) -> None:
        self._data.session_id = None
        self._data.start_time = None
        self._data.pause_time = None
        self._data.recorded_requests = []

    async def _export_selected(self) -> None:
        if self._serializer is None or self._export_sink is None:
            raise SideEffectFailure("No export serializer or sink configured")
        session_id = self._data.selected_session_id
        if session_id is None:
            raise GuardFailed(State.EXPORTING.value, "no session selected")
        session = self._sessions.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        self._events.emit(ExportStarted(session_id=session_id, request_count=session.call_count))
        content = self._serializer.export_session(session_id)
        # The transition only completes once the sink reports delivery.
        self._data.last_export = await self._export_sink.deliver(content, suggest_filename(session))

    async def _fail(self, from_state: State, to_state: State, ex: Exception) -> None:
        self._data.error = TransitionError(
            from_state=from_state.value,
            to_state=to_state.value,
            message=str(ex),
            timestamp=now_ms(),
        )
        self._state = State.ERROR
        try:
            await self._persist()
        except Exception as persist_error:
            logger.error(f"Failed to persist error state: {persist_error}")
        error = self._data.error
        self._events.emit(
            ErrorOccurred(
                from_state=error.from_state,
                to_state=error.to_state,
                message=error.message,
                timestamp=error.timestamp,
            )
        )

    async def _reset_to_idle(self) -> None:
        self._state = State.IDLE
        self._data = StateData()
        await self._persist()

    async def _persist(self) -> None:
        await self._snapshots.write(
            {
                "currentState": self._state.value,
                "stateData": self._data.to_dict(self._operations.held),
                "timestamp": now_ms(),
            }
        )
