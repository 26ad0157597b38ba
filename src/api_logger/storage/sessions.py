from __future__ import annotations

import json
import random
import string
from dataclasses import replace
from datetime import datetime

from loguru import logger

from api_logger.capture.normalizer import MAX_BODY_SIZE, CallData, apply_admission_policy
from api_logger.errors import SessionNotFound
from api_logger.storage.models import SESSION_STATUSES, Call, Session
from api_logger.storage.store import TraceStore
from api_logger.timeutil import now_ms

_UPDATABLE_FIELDS = ("name", "status", "source_url")
_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"session_{now_ms()}_{suffix}"


class SessionStore:
    def __init__(self, store: TraceStore, *, max_body_size: int = MAX_BODY_SIZE):
        self._store = store
        self._max_body_size = max_body_size

    def create_session(self, name: str | None = None, *, source_url: str | None = None) -> Session:
        sid = new_session_id()
        now = now_ms()
        title = (name or "").strip() or self._default_name(now)
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO sessions (id, name, created_at, updated_at, status, call_count, source_url)
                VALUES (?, ?, ?, ?, 'active', 0, ?)
                """,
                (sid, title, now, now, source_url),
            )
        logger.debug(f"Session created: id={sid}, name={title!r}")
        return Session(
            id=sid,
            name=title,
            created_at=now,
            updated_at=now,
            status="active",
            call_count=0,
            source_url=source_url,
        )

    def get_sessions(self) -> list[Session]:
        rows = self._store.execute(
            """
            SELECT id, name, created_at, updated_at, status, call_count, source_url
            FROM sessions
            ORDER BY updated_at DESC, created_at DESC, rowid DESC
            """
        ).fetchall()
        return [Session.from_row(row) for row in rows]

    def get_session(self, session_id: str) -> Session | None:
        row = self._store.execute(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return Session.from_row(row)

    def update_session(self, session_id: str, **fields: object) -> Session:
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        status = fields.get("status")
        if status is not None and status not in SESSION_STATUSES:
            raise ValueError(f"Unknown session status: {status!r}")

        with self._store.transaction():
            current = self.get_session(session_id)
            if current is None:
                raise SessionNotFound(session_id)

            updated_at = self._next_updated_at(current.updated_at)
            assignments = [f"{name} = ?" for name in fields]
            params: list[object] = list(fields.values())
            assignments.append("updated_at = ?")
            params.append(updated_at)
            params.append(session_id)
            self._store.execute(
                f"UPDATE sessions SET {', '.join(assignments)} WHERE id = ?",
                tuple(params),
            )
        return replace(current, **fields, updated_at=updated_at)

    def delete_session(self, session_id: str) -> None:
        with self._store.transaction():
            if self.get_session(session_id) is None:
                raise SessionNotFound(session_id)
            # Calls first, then the session, inside one transaction.
            deleted = self._store.execute("DELETE FROM calls WHERE session_id = ?", (session_id,)).rowcount
            self._store.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        logger.info(f"Session deleted: id={session_id}, calls={deleted}")

    def add_call(self, session_id: str, call_data: CallData) -> Call:
        data = apply_admission_policy(call_data, self._max_body_size)
        with self._store.transaction():
            session = self.get_session(session_id)
            if session is None:
                raise SessionNotFound(session_id)

            seq = session.call_count + 1
            now = now_ms()
            cursor = self._store.execute(
                """
                INSERT INTO calls (
                    session_id, seq, timestamp, method, url,
                    request_headers_json, request_body, request_content_type,
                    status, status_text, response_headers_json, response_body,
                    response_body_truncated, response_content_type, response_size,
                    start_time, duration
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    seq,
                    now,
                    data.method,
                    data.url,
                    _dump_headers(data.request_headers),
                    data.request_body,
                    data.request_content_type,
                    data.status,
                    data.status_text,
                    _dump_headers(data.response_headers),
                    data.response_body,
                    1 if data.response_body_truncated else 0,
                    data.response_content_type,
                    data.response_size,
                    data.start_time,
                    data.duration,
                ),
            )
            self._store.execute(
                "UPDATE sessions SET call_count = ?, updated_at = ? WHERE id = ?",
                (seq, self._next_updated_at(session.updated_at, now), session_id),
            )
            call_id = int(cursor.lastrowid)

        return Call(
            id=call_id,
            session_id=session_id,
            seq=seq,
            timestamp=now,
            method=data.method,
            url=data.url,
            request_headers=data.request_headers,
            request_body=data.request_body,
            request_content_type=data.request_content_type,
            status=data.status,
            status_text=data.status_text,
            response_headers=data.response_headers,
            response_body=data.response_body,
            response_body_truncated=data.response_body_truncated,
            response_content_type=data.response_content_type,
            response_size=data.response_size,
            start_time=data.start_time,
            duration=data.duration,
        )

    def get_calls_by_session(self, session_id: str) -> list[Call]:
        rows = self._store.execute(
            """
            SELECT *
            FROM calls
            WHERE session_id = ?
            ORDER BY seq ASC
            """,
            (session_id,),
        ).fetchall()
        return [Call.from_row(row) for row in rows]

    def clear_all(self) -> None:
        with self._store.transaction():
            self._store.execute("DELETE FROM calls")
            self._store.execute("DELETE FROM sessions")
        logger.info("All sessions and calls cleared")

    def _next_updated_at(self, previous: int, now: int | None = None) -> int:
        now = now_ms() if now is None else now
        return max(now, previous + 1)

    def _default_name(self, now: int) -> str:
        return f"Session {datetime.fromtimestamp(now / 1000).strftime('%Y-%m-%d %H:%M:%S')}"


def _dump_headers(headers: dict[str, str] | None) -> str | None:
    if headers is None:
        return None
    return json.dumps(headers, ensure_ascii=True)
