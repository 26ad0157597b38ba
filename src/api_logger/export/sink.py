from __future__ import annotations

from pathlib import Path
from typing import Protocol

from loguru import logger


class ExportSink(Protocol):
    async def deliver(self, content: str, filename: str) -> str: ...


class DirectoryExportSink:
    """Writes export artifacts into a directory and returns the written path."""

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    async def deliver(self, content: str, filename: str) -> str:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / Path(filename).name
        path.write_text(content, encoding="utf-8")
        logger.info(f"Export written: {path} ({len(content):,} chars)")
        return str(path)
