import asyncio
import json
import shutil
import unittest
from pathlib import Path
from typing import Any
from uuid import uuid4

from api_logger.capture.source import HarReplayCapture, load_har


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class _RecordingSink:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.received: list[dict[str, Any]] = []

    def add_request(self, raw: dict[str, Any]) -> bool:
        self.received.append(raw)
        return self.accept


def _entry(url: str, resource_type: str = "fetch") -> dict[str, Any]:
    return {
        "request": {"method": "GET", "url": url, "headers": []},
        "response": {"status": 200, "headers": [], "content": {"mimeType": "application/json", "text": "{}"}},
        "_resourceType": resource_type,
    }


class HarReplayTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"har-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _write(self, document: Any) -> Path:
        path = self._tmp_dir / "capture.har"
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    def test_load_har_reads_entries_and_page_url(self) -> None:
        path = self._write(
            {
                "log": {
                    "pages": [{"id": "page_1", "title": "https://app.example.com/dashboard"}],
                    "entries": [_entry("https://api.example.com/v1/a"), "garbage"],
                }
            }
        )
        archive = load_har(path)
        self.assertEqual("https://app.example.com/dashboard", archive.page_url)
        self.assertEqual(1, len(archive.entries))

    def test_load_har_rejects_documents_without_entries(self) -> None:
        with self.assertRaises(ValueError):
            load_har(self._write({"log": {}}))

    def test_replay_skips_static_and_opaque_entries(self) -> None:
        sink = _RecordingSink()
        capture = HarReplayCapture()
        entries = [
            _entry("https://api.example.com/v1/a"),
            {
                "request": {"method": "GET", "url": "https://cdn.example.com/app.css", "headers": []},
                "response": {"status": 200, "headers": [], "content": {"mimeType": "text/css"}},
                "_resourceType": "stylesheet",
            },
            _entry("wss://api.example.com/socket", resource_type="websocket"),
            _entry("https://api.example.com/v1/b"),
        ]

        result = capture.replay(entries, sink)

        self.assertEqual(2, result.admitted)
        self.assertEqual(1, result.skipped_static)
        self.assertEqual(1, result.skipped_opaque)
        self.assertEqual(4, result.total)
        self.assertEqual(
            ["https://api.example.com/v1/a", "https://api.example.com/v1/b"],
            [e["request"]["url"] for e in sink.received],
        )

    def test_replay_counts_entries_the_sink_refuses(self) -> None:
        result = HarReplayCapture().replay([_entry("https://api.example.com/v1/a")], _RecordingSink(accept=False))
        self.assertEqual(0, result.admitted)
        self.assertEqual(1, result.rejected)

    def test_attach_reports_page_url_and_detach_unbinds(self) -> None:
        capture = HarReplayCapture(page_url="https://app.example.com/")

        async def scenario() -> str | None:
            url = await capture.attach("s1")
            self.assertEqual("s1", capture.attached_session_id)
            await capture.detach("s1")
            return url

        self.assertEqual("https://app.example.com/", asyncio.run(scenario()))
        self.assertIsNone(capture.attached_session_id)


if __name__ == "__main__":
    unittest.main()
