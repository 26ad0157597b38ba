from __future__ import annotations

from collections.abc import Awaitable, Callable

CommandHandler = Callable[[list[str]], Awaitable[None]]


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_recording: CommandHandler,
        on_export: CommandHandler,
        on_ingest: CommandHandler,
        on_sessions: CommandHandler,
        on_state: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_recording = on_recording
        self._on_export = on_export
        self._on_ingest = on_ingest
        self._on_sessions = on_sessions
        self._on_state = on_state
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        parts = trimmed.split()
        name = parts[0]

        if name == "/help":
            await self._on_help()
            return True
        if name in ("/start", "/resume-session", "/pause", "/resume", "/stop", "/clear-error"):
            await self._on_recording(parts)
            return True
        if name == "/export":
            await self._on_export(parts)
            return True
        if name == "/ingest":
            await self._on_ingest(parts)
            return True
        if name in ("/sessions", "/delete", "/clear-all"):
            await self._on_sessions(parts)
            return True
        if name == "/state":
            await self._on_state()
            return True

        self._on_unknown(trimmed)
        return True
