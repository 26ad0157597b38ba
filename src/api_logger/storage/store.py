from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any


class TraceStore:
    def __init__(self, db_path: str):
        self._db_path = Path(db_path)
        if db_path != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._initialize_schema()

    @property
    def db_path(self) -> str:
        return str(self._db_path)

    def close(self) -> None:
        self._conn.close()

    def execute(self, query: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._conn.execute(query, params)

    def commit(self) -> None:
        with self._lock:
            self._conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[TraceStore]:
        """Run a block of statements as one unit: commit on success, roll back on any error."""
        with self._lock:
            try:
                yield self
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('active', 'paused', 'stopped')),
                call_count INTEGER NOT NULL DEFAULT 0,
                source_url TEXT NULL
            );

            CREATE TABLE IF NOT EXISTS calls (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
                seq INTEGER NOT NULL,
                timestamp INTEGER NOT NULL,
                method TEXT NOT NULL,
                url TEXT NOT NULL,
                request_headers_json TEXT NULL,
                request_body TEXT NULL,
                request_content_type TEXT NULL,
                status INTEGER NULL,
                status_text TEXT NULL,
                response_headers_json TEXT NULL,
                response_body TEXT NULL,
                response_body_truncated INTEGER NOT NULL DEFAULT 0 CHECK (response_body_truncated IN (0, 1)),
                response_content_type TEXT NULL,
                response_size INTEGER NOT NULL DEFAULT 0,
                start_time INTEGER NULL,
                duration INTEGER NOT NULL DEFAULT 0,
                UNIQUE(session_id, seq)
            );

            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_updated
                ON sessions(updated_at);
            CREATE INDEX IF NOT EXISTS idx_calls_session_seq
                ON calls(session_id, seq);
            CREATE INDEX IF NOT EXISTS idx_calls_session_timestamp
                ON calls(session_id, timestamp);
            """
        )
        self._conn.commit()
