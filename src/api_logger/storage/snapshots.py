from __future__ import annotations

import json
from typing import Any, Protocol

from api_logger.storage.store import TraceStore
from api_logger.timeutil import now_ms

SNAPSHOT_KEY = "recordingState"


class SnapshotStore(Protocol):
    async def read(self) -> dict[str, Any] | None: ...

    async def write(self, snapshot: dict[str, Any]) -> None: ...


class SqliteSnapshotStore:
    """Key-value persistence of the lifecycle snapshot in the trace database."""

    def __init__(self, store: TraceStore, *, key: str = SNAPSHOT_KEY):
        self._store = store
        self._key = key

    async def read(self) -> dict[str, Any] | None:
        row = self._store.execute(
            "SELECT value_json FROM kv WHERE key = ? LIMIT 1",
            (self._key,),
        ).fetchone()
        if row is None:
            return None
        value = json.loads(row["value_json"])
        if not isinstance(value, dict):
            raise ValueError(f"Snapshot under {self._key!r} is not an object")
        return value

    async def write(self, snapshot: dict[str, Any]) -> None:
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO kv (key, value_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
                """,
                (self._key, json.dumps(snapshot, ensure_ascii=True), now_ms()),
            )
