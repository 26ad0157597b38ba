import unittest

from api_logger.capture.normalizer import MAX_BODY_SIZE, REDACTED, TRUNCATION_MARKER, CallData
from api_logger.errors import NotFound, SessionNotFound
from api_logger.storage import SessionStore, TraceStore

from tests.storage.base import TraceStoreTestCase


def _call(url: str = "https://api.example.com/v1/items", **fields) -> CallData:
    return CallData(method=fields.pop("method", "GET"), url=url, **fields)


class SessionStoreTests(TraceStoreTestCase):
    def test_create_session_uses_default_name_and_active_status(self) -> None:
        session = self._sessions.create_session()
        self.assertTrue(session.id.startswith("session_"))
        self.assertTrue(session.name.startswith("Session "))
        self.assertEqual("active", session.status)
        self.assertEqual(0, session.call_count)
        self.assertEqual(session, self._sessions.get_session(session.id))

    def test_get_session_returns_none_when_absent(self) -> None:
        self.assertIsNone(self._sessions.get_session("missing"))

    def test_seq_is_dense_and_matches_call_count(self) -> None:
        session = self._sessions.create_session("dense")
        for i in range(5):
            call = self._sessions.add_call(session.id, _call(f"https://api.example.com/v1/items/{i}"))
            self.assertEqual(i + 1, call.seq)

        calls = self._sessions.get_calls_by_session(session.id)
        self.assertEqual([1, 2, 3, 4, 5], [c.seq for c in calls])
        self.assertEqual(5, self._sessions.get_session(session.id).call_count)

    def test_seq_continues_after_reopening_database(self) -> None:
        session = self._sessions.create_session("reopen")
        self._sessions.add_call(session.id, _call())
        self._sessions.add_call(session.id, _call())
        self._store.close()

        self._store = TraceStore(str(self._tmp_dir / "traces.db"))
        self._sessions = SessionStore(self._store)
        call = self._sessions.add_call(session.id, _call())
        self.assertEqual(3, call.seq)

    def test_add_call_updates_updated_at_monotonically(self) -> None:
        session = self._sessions.create_session("clock")
        previous = session.updated_at
        for _ in range(3):
            self._sessions.add_call(session.id, _call())
            current = self._sessions.get_session(session.id).updated_at
            self.assertGreater(current, previous)
            previous = current

    def test_add_call_to_missing_session_raises_not_found(self) -> None:
        with self.assertRaises(SessionNotFound):
            self._sessions.add_call("missing", _call())
        row = self._store.execute("SELECT COUNT(*) AS c FROM calls").fetchone()
        self.assertEqual(0, int(row["c"]))

    def test_add_call_redacts_sensitive_headers(self) -> None:
        session = self._sessions.create_session("redact")
        call = self._sessions.add_call(
            session.id,
            _call(
                request_headers={"Authorization": "Bearer x", "X-Api-Key": "k", "Accept": "application/json"},
                response_headers={"Set-Cookie": "a=b", "Content-Type": "application/json"},
            ),
        )
        stored = self._sessions.get_calls_by_session(session.id)[0]
        for loaded in (call, stored):
            self.assertEqual(REDACTED, loaded.request_headers["authorization"])
            self.assertEqual(REDACTED, loaded.request_headers["x-api-key"])
            self.assertEqual("application/json", loaded.request_headers["accept"])
            self.assertEqual(REDACTED, loaded.response_headers["set-cookie"])

    def test_add_call_truncates_large_bodies(self) -> None:
        session = self._sessions.create_session("big")
        self._sessions.add_call(
            session.id,
            _call(method="POST", request_body="a" * (MAX_BODY_SIZE + 10), response_body="b" * (MAX_BODY_SIZE + 1)),
        )
        stored = self._sessions.get_calls_by_session(session.id)[0]
        self.assertEqual("a" * MAX_BODY_SIZE + TRUNCATION_MARKER, stored.request_body)
        self.assertEqual(MAX_BODY_SIZE, len(stored.response_body))
        self.assertTrue(stored.response_body_truncated)

    def test_small_bodies_are_stored_verbatim(self) -> None:
        session = self._sessions.create_session("small")
        self._sessions.add_call(session.id, _call(request_body='{"a":1}', response_body="ok"))
        stored = self._sessions.get_calls_by_session(session.id)[0]
        self.assertEqual('{"a":1}', stored.request_body)
        self.assertEqual("ok", stored.response_body)
        self.assertFalse(stored.response_body_truncated)

    def test_update_session_changes_fields_and_bumps_updated_at(self) -> None:
        session = self._sessions.create_session("before")
        updated = self._sessions.update_session(session.id, name="after", status="paused", source_url="https://x.test")
        self.assertEqual("after", updated.name)
        self.assertEqual("paused", updated.status)
        self.assertEqual("https://x.test", updated.source_url)
        self.assertGreater(updated.updated_at, session.updated_at)
        self.assertEqual(self._sessions.get_session(session.id), updated)

    def test_update_session_rejects_unknown_fields_and_statuses(self) -> None:
        session = self._sessions.create_session("strict")
        with self.assertRaises(ValueError):
            self._sessions.update_session(session.id, call_count=10)
        with self.assertRaises(ValueError):
            self._sessions.update_session(session.id, status="exporting")

    def test_update_missing_session_raises_not_found(self) -> None:
        with self.assertRaises(NotFound):
            self._sessions.update_session("missing", name="x")

    def test_get_sessions_orders_by_most_recently_updated(self) -> None:
        first = self._sessions.create_session("first")
        second = self._sessions.create_session("second")
        third = self._sessions.create_session("third")
        for session, updated_at in ((first, 3_000), (second, 1_000), (third, 2_000)):
            self._store.execute("UPDATE sessions SET updated_at = ? WHERE id = ?", (updated_at, session.id))
        self._store.commit()

        ids = [s.id for s in self._sessions.get_sessions()]
        self.assertEqual([first.id, third.id, second.id], ids)

    def test_delete_session_cascades_to_calls(self) -> None:
        keep = self._sessions.create_session("keep")
        drop = self._sessions.create_session("drop")
        self._sessions.add_call(keep.id, _call())
        self._sessions.add_call(drop.id, _call())
        self._sessions.add_call(drop.id, _call())

        self._sessions.delete_session(drop.id)

        self.assertIsNone(self._sessions.get_session(drop.id))
        self.assertEqual([], self._sessions.get_calls_by_session(drop.id))
        self.assertEqual(1, len(self._sessions.get_calls_by_session(keep.id)))

    def test_delete_missing_session_raises_not_found(self) -> None:
        with self.assertRaises(SessionNotFound):
            self._sessions.delete_session("missing")

    def test_clear_all_removes_everything(self) -> None:
        session = self._sessions.create_session("gone")
        self._sessions.add_call(session.id, _call())
        self._sessions.clear_all()
        self.assertEqual([], self._sessions.get_sessions())
        row = self._store.execute("SELECT COUNT(*) AS c FROM calls").fetchone()
        self.assertEqual(0, int(row["c"]))


if __name__ == "__main__":
    unittest.main()
