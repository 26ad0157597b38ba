from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from api_logger.capture.normalizer import TransactionKind, classify_transaction


class CaptureController(Protocol):
    """Hook/unhook side of the capture mechanism, driven by the lifecycle.

    ``attach`` returns the URL of the page being observed, when known.
    """

    async def attach(self, session_id: str) -> str | None: ...

    async def detach(self, session_id: str) -> None: ...


class RequestSink(Protocol):
    def add_request(self, raw: dict[str, Any]) -> bool: ...


@dataclass
class ReplayResult:
    admitted: int = 0
    rejected: int = 0
    skipped_static: int = 0
    skipped_opaque: int = 0

    @property
    def total(self) -> int:
        return self.admitted + self.rejected + self.skipped_static + self.skipped_opaque


@dataclass(frozen=True)
class HarArchive:
    entries: list[dict[str, Any]]
    page_url: str | None


def load_har(path: str | Path) -> HarArchive:
    with open(path, encoding="utf-8") as f:
        document = json.load(f)

    log = document.get("log") if isinstance(document, dict) else None
    if not isinstance(log, dict) or not isinstance(log.get("entries"), list):
        raise ValueError(f"Not a HAR file (missing log.entries): {path}")

    page_url = None
    pages = log.get("pages") or []
    if pages and isinstance(pages[0], dict):
        title = pages[0].get("title")
        if isinstance(title, str) and "://" in title:
            page_url = title
    return HarArchive(entries=[e for e in log["entries"] if isinstance(e, dict)], page_url=page_url)


class HarReplayCapture:
    """Capture source that replays recorded HAR entries into a request sink.

    Static resources are dropped and non-HTTP transports are tagged as opaque
    and skipped. Everything else is offered to the sink, which decides
    whether the call is admitted.
    """

    def __init__(self, *, page_url: str | None = None):
        self._page_url = page_url
        self._attached_session_id: str | None = None

    @property
    def attached_session_id(self) -> str | None:
        return self._attached_session_id

    async def attach(self, session_id: str) -> str | None:
        self._attached_session_id = session_id
        logger.debug(f"Capture attached: session={session_id}")
        return self._page_url

    async def detach(self, session_id: str) -> None:
        if self._attached_session_id == session_id:
            self._attached_session_id = None
        logger.debug(f"Capture detached: session={session_id}")

    def replay(self, entries: list[dict[str, Any]], sink: RequestSink) -> ReplayResult:
        result = ReplayResult()
        for entry in entries:
            kind = classify_transaction(entry)
            if kind is TransactionKind.STATIC:
                result.skipped_static += 1
                continue
            if kind is TransactionKind.OPAQUE:
                result.skipped_opaque += 1
                logger.debug("Skipped opaque (non-HTTP) transaction")
                continue
            if sink.add_request(entry):
                result.admitted += 1
            else:
                result.rejected += 1
        logger.info(
            f"Replay finished: admitted={result.admitted}, rejected={result.rejected}, "
            f"static={result.skipped_static}, opaque={result.skipped_opaque}"
        )
        return result
