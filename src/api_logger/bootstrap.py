from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from api_logger.app_config import AppConfig
from api_logger.capture.source import HarReplayCapture
from api_logger.commands.channel import CommandChannel
from api_logger.export.serializer import ExportSerializer
from api_logger.export.sink import DirectoryExportSink
from api_logger.lifecycle.machine import RecordingStateMachine
from api_logger.lifecycle.states import LIFECYCLE_EXPORT_TRANSITIONS, TRANSITIONS
from api_logger.logging_config import log_directory_for, setup_logging
from api_logger.storage.sessions import SessionStore
from api_logger.storage.snapshots import SqliteSnapshotStore
from api_logger.storage.store import TraceStore


@dataclass
class AppRuntime:
    store: TraceStore
    sessions: SessionStore
    capture: HarReplayCapture
    machine: RecordingStateMachine
    channel: CommandChannel
    log_descriptions: list[str]


def _resolve(path: str) -> str:
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = Path.cwd() / resolved
    return str(resolved)


async def bootstrap_runtime(app: AppConfig) -> AppRuntime:
    log_descriptions = setup_logging(
        level=app.log_level,
        consumers=app.log_consumers,
        log_dir=log_directory_for(app.db_path),
    )

    store = TraceStore(app.db_path if app.db_path == ":memory:" else _resolve(app.db_path))
    sessions = SessionStore(store, max_body_size=app.max_body_bytes)
    serializer = ExportSerializer(sessions)
    export_sink = DirectoryExportSink(_resolve(app.export_directory))
    capture = HarReplayCapture()

    machine = RecordingStateMachine(
        sessions,
        SqliteSnapshotStore(store),
        capture=capture,
        serializer=serializer,
        export_sink=export_sink,
        transitions=LIFECYCLE_EXPORT_TRANSITIONS if app.lifecycle_exports else TRANSITIONS,
        stale_after_ms=app.stale_state_seconds * 1000,
        max_body_size=app.max_body_bytes,
    )
    recovered = await machine.recover()
    logger.info(f"Recorder ready: db={store.db_path}, state={recovered.current_state.value}")

    channel = CommandChannel(
        machine,
        sessions,
        serializer=serializer,
        export_sink=export_sink,
        lifecycle_exports=app.lifecycle_exports,
    )

    return AppRuntime(
        store=store,
        sessions=sessions,
        capture=capture,
        machine=machine,
        channel=channel,
        log_descriptions=log_descriptions,
    )
