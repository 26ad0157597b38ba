import base64
import unittest

from api_logger.capture.normalizer import (
    MAX_BODY_SIZE,
    REDACTED,
    TRUNCATION_MARKER,
    CallData,
    TransactionKind,
    apply_admission_policy,
    classify_transaction,
    is_likely_api_call,
    normalize_transaction,
    redact_headers,
    truncate_request_body,
)


def _har_entry(url: str, **overrides) -> dict:
    entry = {
        "startedDateTime": "2026-01-02T03:04:05.678Z",
        "time": 41.6,
        "request": {
            "method": "post",
            "url": url,
            "headers": [
                {"name": "Content-Type", "value": "application/json"},
                {"name": "Cookie", "value": "sid=abc"},
            ],
            "postData": {"mimeType": "application/json", "text": '{"q":1}'},
        },
        "response": {
            "status": 201,
            "statusText": "Created",
            "headers": [{"name": "Content-Type", "value": "application/json; charset=utf-8"}],
            "content": {"size": 11, "mimeType": "application/json; charset=utf-8", "text": '{"ok":true}'},
        },
        "_resourceType": "fetch",
    }
    entry.update(overrides)
    return entry


def _static_entry(url: str) -> dict:
    return {
        "request": {"method": "GET", "url": url, "headers": []},
        "response": {"status": 200, "headers": [], "content": {"mimeType": "application/javascript"}},
        "_resourceType": "script",
    }


class RedactionTests(unittest.TestCase):
    def test_sensitive_headers_are_redacted_case_insensitively(self) -> None:
        headers = redact_headers(
            {"AUTHORIZATION": "a", "Cookie": "b", "set-cookie": "c", "X-API-KEY": "d", "Api-Key": "e", "Accept": "*/*"}
        )
        self.assertEqual(
            {
                "authorization": REDACTED,
                "cookie": REDACTED,
                "set-cookie": REDACTED,
                "x-api-key": REDACTED,
                "api-key": REDACTED,
                "accept": "*/*",
            },
            headers,
        )

    def test_har_header_lists_are_accepted(self) -> None:
        headers = redact_headers([{"name": "Authorization", "value": "x"}, {"name": "Accept", "value": "y"}])
        self.assertEqual({"authorization": REDACTED, "accept": "y"}, headers)

    def test_none_headers_stay_none(self) -> None:
        self.assertIsNone(redact_headers(None))


class TruncationTests(unittest.TestCase):
    def test_request_body_at_limit_is_kept(self) -> None:
        body = "x" * MAX_BODY_SIZE
        self.assertEqual(body, truncate_request_body(body))

    def test_request_body_over_limit_gets_marker(self) -> None:
        truncated = truncate_request_body("x" * (MAX_BODY_SIZE + 1))
        self.assertEqual("x" * MAX_BODY_SIZE + TRUNCATION_MARKER, truncated)

    def test_admission_policy_is_idempotent(self) -> None:
        data = CallData(
            method="POST",
            url="https://api.example.com/upload",
            request_headers={"Authorization": "secret"},
            request_body="r" * (MAX_BODY_SIZE * 2),
            response_body="s" * (MAX_BODY_SIZE * 2),
        )
        once = apply_admission_policy(data)
        twice = apply_admission_policy(once)
        self.assertEqual(once, twice)
        self.assertTrue(once.response_body_truncated)


class ClassificationTests(unittest.TestCase):
    def test_xhr_and_fetch_are_api_calls(self) -> None:
        self.assertTrue(is_likely_api_call("https://x.test/app.js", "xhr"))
        self.assertTrue(is_likely_api_call("https://x.test/anything", "fetch"))

    def test_static_assets_are_not_api_calls(self) -> None:
        self.assertFalse(is_likely_api_call("https://x.test/static/app.css", "stylesheet"))
        self.assertFalse(is_likely_api_call("https://x.test/logo.png", ""))

    def test_api_url_patterns_win_over_resource_type(self) -> None:
        self.assertTrue(is_likely_api_call("https://x.test/api/users", "other"))
        self.assertTrue(is_likely_api_call("https://x.test/graphql", "other"))

    def test_json_mime_type_marks_api_call(self) -> None:
        self.assertTrue(is_likely_api_call("https://x.test/data", "other", "application/json"))

    def test_websockets_are_opaque(self) -> None:
        self.assertEqual(TransactionKind.OPAQUE, classify_transaction({"url": "wss://x.test/socket"}))
        self.assertEqual(
            TransactionKind.OPAQUE,
            classify_transaction(_har_entry("https://x.test/socket", _resourceType="websocket")),
        )

    def test_har_entries_are_classified(self) -> None:
        self.assertEqual(TransactionKind.API, classify_transaction(_har_entry("https://x.test/v1/items")))
        self.assertEqual(
            TransactionKind.STATIC,
            classify_transaction(_static_entry("https://x.test/main.js")),
        )


class NormalizeTests(unittest.TestCase):
    def test_har_entry_is_normalized(self) -> None:
        data = normalize_transaction(_har_entry("https://api.example.com/v1/items?page=2"))
        self.assertEqual("POST", data.method)
        self.assertEqual("https://api.example.com/v1/items?page=2", data.url)
        self.assertEqual(REDACTED, data.request_headers["cookie"])
        self.assertEqual("application/json", data.request_headers["content-type"])
        self.assertEqual('{"q":1}', data.request_body)
        self.assertEqual("application/json", data.request_content_type)
        self.assertEqual(201, data.status)
        self.assertEqual("Created", data.status_text)
        self.assertEqual('{"ok":true}', data.response_body)
        self.assertEqual(11, data.response_size)
        self.assertEqual(42, data.duration)
        self.assertEqual(1767323045678, data.start_time)

    def test_base64_har_content_is_decoded(self) -> None:
        entry = _har_entry("https://api.example.com/v1/items")
        entry["response"]["content"] = {
            "mimeType": "application/json",
            "encoding": "base64",
            "text": base64.b64encode('{"a":"é"}'.encode()).decode("ascii"),
        }
        self.assertEqual('{"a":"é"}', normalize_transaction(entry).response_body)

    def test_flat_record_is_normalized(self) -> None:
        data = normalize_transaction(
            {
                "method": "get",
                "url": "https://api.example.com/v2/me",
                "status": "200",
                "requestHeaders": {"X-Api-Key": "k"},
                "responseHeaders": {"Content-Type": "application/json"},
                "responseBody": {"id": 7},
                "duration": 12,
            }
        )
        self.assertEqual("GET", data.method)
        self.assertEqual(200, data.status)
        self.assertEqual({"x-api-key": REDACTED}, data.request_headers)
        self.assertEqual('{"id": 7}', data.response_body)
        self.assertEqual("application/json", data.response_content_type)
        self.assertEqual(len('{"id": 7}'), data.response_size)

    def test_flat_record_without_url_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            normalize_transaction({"method": "GET"})

    def test_non_mapping_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            normalize_transaction(["not", "a", "dict"])  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
