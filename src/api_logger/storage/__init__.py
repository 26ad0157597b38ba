from api_logger.storage.models import Call, Session
from api_logger.storage.sessions import SessionStore
from api_logger.storage.snapshots import SnapshotStore, SqliteSnapshotStore
from api_logger.storage.store import TraceStore

__all__ = [
    "Call",
    "Session",
    "SessionStore",
    "SnapshotStore",
    "SqliteSnapshotStore",
    "TraceStore",
]
