"""Loguru sinks for the recorder.

Every record carries a ``session`` extra (``-`` outside a recording) so log
lines can be matched with the session they were written for. Relative log
file paths are placed next to the trace database.
"""

import sys
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

DEFAULT_LOG_FILE = "api-logger.log"
NO_SESSION = "-"

_CONSOLE_FORMAT = "<level>{level:<8}</level> | <cyan>{extra[session]}</cyan> | <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session]} | {name}:{function}:{line} - {message}"


class LogSink(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleSink:
    def register(self, level: str) -> None:
        logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class RotatingFileSink:
    def __init__(self, path: Path, rotation: str = "5 MB", retention: int = 3):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self._path),
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level}, rotate at {self._rotation})"


def log_directory_for(db_path: str) -> Path:
    """Directory holding the trace database; the working directory for in-memory databases."""
    if db_path == ":memory:":
        return Path.cwd()
    path = Path(db_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    return path.parent


def _build_sink(config: dict[str, Any], log_dir: Path) -> LogSink | None:
    sink_type = config.get("type", "")
    if sink_type == "console":
        return ConsoleSink()
    if sink_type == "file":
        path = Path(config.get("path") or DEFAULT_LOG_FILE)
        if not path.is_absolute():
            path = log_dir / path
        options = {k: config[k] for k in ("rotation", "retention") if k in config}
        return RotatingFileSink(path, **options)
    logger.warning(f"Unknown log consumer type: {sink_type!r}")
    return None


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
    *,
    log_dir: Path | None = None,
) -> list[str]:
    """Replace loguru's sinks with the configured consumers and describe each one.

    Without ``consumers`` warnings go to the console and everything at
    ``level`` goes to ``api-logger.log`` in ``log_dir``.
    """
    logger.remove()
    logger.configure(extra={"session": NO_SESSION})
    log_dir = log_dir or Path.cwd()
    if consumers is None:
        consumers = [{"type": "console", "level": "WARNING"}, {"type": "file"}]

    descriptions: list[str] = []
    for config in consumers:
        sink = _build_sink(config, log_dir)
        if sink is None:
            continue
        sink_level = config.get("level", level)
        sink.register(sink_level)
        descriptions.append(sink.describe(sink_level))

    return descriptions
