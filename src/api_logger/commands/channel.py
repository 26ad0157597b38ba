from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from api_logger.errors import RecorderError, SessionNotFound
from api_logger.export.serializer import ExportSerializer, suggest_filename
from api_logger.export.sink import ExportSink
from api_logger.lifecycle.events import to_message
from api_logger.lifecycle.machine import RecordingStateMachine
from api_logger.lifecycle.states import State
from api_logger.storage.sessions import SessionStore

Broadcast = Callable[[dict[str, Any]], None]


def new_operation_id(action: str) -> str:
    return f"{action}_{uuid.uuid4().hex}"


class CommandChannel:
    """Request/response surface over the recorder.

    Messages are dicts with an ``action`` key; answers are
    ``{"success": True, "state": {...}, ...}`` or
    ``{"success": False, "error": "<message>"}``. Lifecycle events are
    forwarded to ``broadcast`` in their wire form.
    """

    def __init__(
        self,
        machine: RecordingStateMachine,
        sessions: SessionStore,
        *,
        serializer: ExportSerializer,
        export_sink: ExportSink,
        lifecycle_exports: bool = False,
        broadcast: Broadcast | None = None,
    ):
        self._machine = machine
        self._sessions = sessions
        self._serializer = serializer
        self._export_sink = export_sink
        self._lifecycle_exports = lifecycle_exports
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "start": self._start,
            "resumeSession": self._resume_session,
            "pause": self._pause,
            "resume": self._resume,
            "stop": self._stop,
            "export": self._export,
            "clearError": self._clear_error,
            "getState": self._get_state,
            "addRequest": self._add_request,
            "listSessions": self._list_sessions,
            "deleteSession": self._delete_session,
            "clearAll": self._clear_all,
        }
        if broadcast is not None:
            machine.events.subscribe(lambda event: broadcast(to_message(event)))

    async def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        action = message.get("action") if isinstance(message, dict) else None
        handler = self._handlers.get(action) if isinstance(action, str) else None
        if handler is None:
            return {"success": False, "error": f"Unknown action: {action}"}

        try:
            return await handler(message)
        except (RecorderError, ValueError) as ex:
            logger.warning(f"Command {action} failed: {ex}")
            return {"success": False, "error": str(ex)}

    def _ok(self, **extra: Any) -> dict[str, Any]:
        return {"success": True, "state": self._machine.get_state().to_dict(), **extra}

    async def _start(self, message: dict[str, Any]) -> dict[str, Any]:
        self._machine.prepare_recording(name=message.get("name"))
        await self._machine.transition(State.RECORDING, new_operation_id("start"))
        return self._ok()

    async def _resume_session(self, message: dict[str, Any]) -> dict[str, Any]:
        session_id = _session_id(message)
        if not session_id:
            return {"success": False, "error": "resumeSession requires a sessionId"}
        self._machine.prepare_recording(session_id=session_id)
        await self._machine.transition(State.RECORDING, new_operation_id("resumeSession"))
        return self._ok()

    async def _pause(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._machine.transition(State.PAUSED, new_operation_id("pause"))
        return self._ok()

    async def _resume(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._machine.transition(State.RECORDING, new_operation_id("resume"))
        return self._ok()

    async def _stop(self, message: dict[str, Any]) -> dict[str, Any]:
        operation_id = new_operation_id("stop")
        await self._machine.transition(State.STOPPING, operation_id)
        await self._machine.transition(State.IDLE, operation_id)
        return self._ok()

    async def _export(self, message: dict[str, Any]) -> dict[str, Any]:
        session_id = _session_id(message) or self._machine.get_state().selected_session_id
        if not session_id:
            return {"success": False, "error": "No session selected for export"}

        if self._lifecycle_exports:
            operation_id = new_operation_id("export")
            self._machine.select_session(session_id)
            await self._machine.transition(State.EXPORTING, operation_id)
            await self._machine.transition(State.IDLE, operation_id)
            return self._ok(path=self._machine.get_state().last_export)

        session = self._sessions.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        content = self._serializer.export_session(session_id)
        path = await self._export_sink.deliver(content, suggest_filename(session))
        return self._ok(path=path)

    async def _clear_error(self, message: dict[str, Any]) -> dict[str, Any]:
        if self._machine.current_state is State.ERROR:
            await self._machine.transition(State.IDLE, new_operation_id("clearError"))
        return self._ok()

    async def _get_state(self, message: dict[str, Any]) -> dict[str, Any]:
        return self._ok()

    async def _add_request(self, message: dict[str, Any]) -> dict[str, Any]:
        raw = message.get("request")
        if not isinstance(raw, dict):
            return {"success": False, "error": "addRequest requires a request object"}
        return self._ok(accepted=self._machine.add_request(raw))

    async def _list_sessions(self, message: dict[str, Any]) -> dict[str, Any]:
        return self._ok(sessions=[s.to_dict() for s in self._sessions.get_sessions()])

    async def _delete_session(self, message: dict[str, Any]) -> dict[str, Any]:
        session_id = _session_id(message)
        if not session_id:
            return {"success": False, "error": "deleteSession requires a sessionId"}
        if session_id == self._machine.get_state().session_id:
            return {"success": False, "error": "Cannot delete the session being recorded"}
        self._sessions.delete_session(session_id)
        return self._ok()

    async def _clear_all(self, message: dict[str, Any]) -> dict[str, Any]:
        if self._machine.get_state().session_id is not None:
            return {"success": False, "error": "Cannot clear sessions while recording"}
        self._sessions.clear_all()
        return self._ok()


def _session_id(message: dict[str, Any]) -> str | None:
    value = message.get("sessionId", message.get("session_id"))
    return str(value) if value else None
