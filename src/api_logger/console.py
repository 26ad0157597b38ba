from __future__ import annotations

from typing import Any

from loguru import logger

from api_logger.bootstrap import AppRuntime
from api_logger.capture.source import load_har
from api_logger.commands.router import CommandRouter
from api_logger.services.session_controller import SessionController

_RECORDING_ACTIONS = {
    "/start": "start",
    "/resume-session": "resumeSession",
    "/pause": "pause",
    "/resume": "resume",
    "/stop": "stop",
    "/clear-error": "clearError",
}


class RecorderConsole:
    """Slash-command front end over the command channel."""

    _LINE_PREFIX = "rec> "

    def __init__(self, runtime: AppRuntime):
        self._runtime = runtime
        self._channel = runtime.channel
        self._session_controller = SessionController(line_prefix=self._LINE_PREFIX)
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_recording=self._handle_recording_command,
            on_export=self._handle_export_command,
            on_ingest=self._handle_ingest_command,
            on_sessions=self._handle_sessions_command,
            on_state=self._on_state,
            on_unknown=self._on_unknown_command,
        )

    @property
    def prompt(self) -> str:
        return f"{self._runtime.machine.current_state.value}> "

    async def handle(self, user_message: str) -> bool:
        return await self._command_router.try_handle(user_message)

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Available commands:")
        print(f"{self._LINE_PREFIX}- /start [name]")
        print(f"{self._LINE_PREFIX}- /resume-session <id>")
        print(f"{self._LINE_PREFIX}- /pause")
        print(f"{self._LINE_PREFIX}- /resume")
        print(f"{self._LINE_PREFIX}- /stop")
        print(f"{self._LINE_PREFIX}- /export [id]")
        print(f"{self._LINE_PREFIX}- /ingest <file.har>")
        print(f"{self._LINE_PREFIX}- /sessions")
        print(f"{self._LINE_PREFIX}- /delete <id>")
        print(f"{self._LINE_PREFIX}- /clear-all")
        print(f"{self._LINE_PREFIX}- /clear-error")
        print(f"{self._LINE_PREFIX}- /state")
        print(f"{self._LINE_PREFIX}- /quit")

    def _on_unknown_command(self, trimmed: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown command: {trimmed} (try /help)")

    async def _on_state(self) -> None:
        response = await self._channel.handle({"action": "getState"})
        self._print_state(response["state"])

    async def _handle_recording_command(self, parts: list[str]) -> None:
        message: dict[str, Any] = {"action": _RECORDING_ACTIONS[parts[0]]}
        if parts[0] == "/start" and len(parts) > 1:
            message["name"] = " ".join(parts[1:])
        if parts[0] == "/resume-session":
            if len(parts) != 2:
                print(f"{self._LINE_PREFIX}Usage: /resume-session <id>")
                return
            message["sessionId"] = parts[1]
        self._print_response(await self._channel.handle(message))

    async def _handle_export_command(self, parts: list[str]) -> None:
        message: dict[str, Any] = {"action": "export"}
        if len(parts) > 1:
            message["sessionId"] = parts[1]
        response = await self._channel.handle(message)
        if response["success"]:
            print(f"{self._LINE_PREFIX}Exported to {response['path']}")
        else:
            self._print_response(response)

    async def _handle_ingest_command(self, parts: list[str]) -> None:
        if len(parts) != 2:
            print(f"{self._LINE_PREFIX}Usage: /ingest <file.har>")
            return
        try:
            archive = load_har(parts[1])
        except (OSError, ValueError) as ex:
            logger.warning(f"Failed to load HAR file {parts[1]}: {ex}")
            print(f"{self._LINE_PREFIX}Cannot read {parts[1]}: {ex}")
            return

        result = self._runtime.capture.replay(archive.entries, self._runtime.machine)
        print(
            f"{self._LINE_PREFIX}Ingested {result.total} entries: admitted={result.admitted}, "
            f"rejected={result.rejected}, static={result.skipped_static}, opaque={result.skipped_opaque}"
        )
        if result.rejected and not result.admitted:
            print(f"{self._LINE_PREFIX}Nothing was recorded: the recorder is not recording.")

    async def _handle_sessions_command(self, parts: list[str]) -> None:
        if parts[0] == "/delete":
            if len(parts) != 2:
                print(f"{self._LINE_PREFIX}Usage: /delete <id>")
                return
            self._print_response(await self._channel.handle({"action": "deleteSession", "sessionId": parts[1]}))
            return
        if parts[0] == "/clear-all":
            self._print_response(await self._channel.handle({"action": "clearAll"}))
            return

        response = await self._channel.handle({"action": "listSessions"})
        sessions = response["sessions"]
        if not sessions:
            print(f"{self._LINE_PREFIX}No sessions recorded")
            return
        active = response["state"]["sessionId"] or response["state"]["selectedSessionId"]
        print(f"{self._LINE_PREFIX}Sessions:")
        for session in sessions:
            print(self._session_controller.format_session_list_entry(session, active_session_id=active))

    def _print_response(self, response: dict[str, Any]) -> None:
        if not response["success"]:
            print(f"{self._LINE_PREFIX}Error: {response['error']}")
            return
        self._print_state(response["state"])

    def _print_state(self, state: dict[str, Any]) -> None:
        for line in self._session_controller.format_state_lines(state):
            print(line)
