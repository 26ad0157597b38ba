import asyncio
import unittest

from tests.storage.base import TraceStoreTestCase


class SnapshotStoreTests(TraceStoreTestCase):
    def test_read_returns_none_before_first_write(self) -> None:
        self.assertIsNone(asyncio.run(self._snapshots.read()))

    def test_write_overwrites_previous_snapshot(self) -> None:
        async def scenario() -> dict | None:
            await self._snapshots.write({"currentState": "recording", "timestamp": 1})
            await self._snapshots.write({"currentState": "idle", "timestamp": 2})
            return await self._snapshots.read()

        self.assertEqual({"currentState": "idle", "timestamp": 2}, asyncio.run(scenario()))
        row = self._store.execute("SELECT COUNT(*) AS c FROM kv").fetchone()
        self.assertEqual(1, int(row["c"]))

    def test_non_object_snapshot_is_rejected(self) -> None:
        self._store.execute(
            "INSERT INTO kv (key, value_json, updated_at) VALUES ('recordingState', '[1, 2]', 0)"
        )
        self._store.commit()
        with self.assertRaises(ValueError):
            asyncio.run(self._snapshots.read())


if __name__ == "__main__":
    unittest.main()
