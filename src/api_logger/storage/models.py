from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any

SESSION_STATUSES = ("active", "paused", "stopped")


@dataclass(frozen=True)
class Session:
    id: str
    name: str
    created_at: int
    updated_at: int
    status: str
    call_count: int
    source_url: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Session:
        return cls(
            id=row["id"],
            name=row["name"],
            created_at=int(row["created_at"]),
            updated_at=int(row["updated_at"]),
            status=row["status"],
            call_count=int(row["call_count"]),
            source_url=row["source_url"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "status": self.status,
            "callCount": self.call_count,
            "sourceUrl": self.source_url,
        }


@dataclass(frozen=True)
class Call:
    id: int
    session_id: str
    seq: int
    timestamp: int
    method: str
    url: str
    request_headers: dict[str, str] | None = None
    request_body: str | None = None
    request_content_type: str | None = None
    status: int | None = None
    status_text: str | None = None
    response_headers: dict[str, str] | None = None
    response_body: str | None = None
    response_body_truncated: bool = False
    response_content_type: str | None = None
    response_size: int = 0
    start_time: int | None = None
    duration: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Call:
        return cls(
            id=int(row["id"]),
            session_id=row["session_id"],
            seq=int(row["seq"]),
            timestamp=int(row["timestamp"]),
            method=row["method"],
            url=row["url"],
            request_headers=_load_headers(row["request_headers_json"]),
            request_body=row["request_body"],
            request_content_type=row["request_content_type"],
            status=row["status"],
            status_text=row["status_text"],
            response_headers=_load_headers(row["response_headers_json"]),
            response_body=row["response_body"],
            response_body_truncated=bool(row["response_body_truncated"]),
            response_content_type=row["response_content_type"],
            response_size=int(row["response_size"] or 0),
            start_time=row["start_time"],
            duration=int(row["duration"] or 0),
        )


def _load_headers(value: str | None) -> dict[str, str] | None:
    if value is None:
        return None
    parsed = json.loads(value)
    return parsed if isinstance(parsed, dict) else None
