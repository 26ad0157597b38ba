"""Turns raw network transactions into normalized call records.

Two input shapes are accepted:

* HAR entries as produced by browser devtools (``request``/``response``
  objects, ``startedDateTime``, ``time``, optional ``_resourceType``), and
* flat records as sent by page-level hooks (``method``, ``url``,
  ``status``, ``requestHeaders``, ``responseBody``, ...).

Everything in this module is a pure function of its input.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

REDACTED = "[REDACTED]"
TRUNCATION_MARKER = "\n[TRUNCATED]"
MAX_BODY_SIZE = 100 * 1024

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-api-key", "api-key"})

_API_MIME_TYPES = (
    "application/json",
    "application/xml",
    "text/xml",
    "application/x-www-form-urlencoded",
    "text/plain",
)
_API_URL_PATTERNS = ("/api/", "/v1/", "/v2/", "/v3/", "/graphql", "/rest/", ".json")
_STATIC_EXTENSIONS = (
    ".js", ".css", ".png", ".jpg", ".jpeg", ".gif", ".svg",
    ".woff", ".woff2", ".ttf", ".ico", ".map",
)
_OPAQUE_SCHEMES = ("ws://", "wss://")


class TransactionKind(str, Enum):
    API = "api"
    STATIC = "static"
    OPAQUE = "opaque"


@dataclass
class CallData:
    """Normalized call fields as accepted by ``SessionStore.add_call``."""

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


def redact_headers(headers: Any) -> dict[str, str] | None:
    """Lower-case header names and replace sensitive values with ``[REDACTED]``.

    Accepts a mapping or a HAR-style list of ``{"name", "value"}`` pairs.
    """
    if headers is None:
        return None

    if isinstance(headers, dict):
        pairs = headers.items()
    else:
        pairs = ((h.get("name", ""), h.get("value", "")) for h in headers if isinstance(h, dict))

    filtered: dict[str, str] = {}
    for name, value in pairs:
        key = str(name).lower()
        filtered[key] = REDACTED if key in SENSITIVE_HEADERS else str(value)
    return filtered


def truncate_request_body(body: str | None, max_size: int = MAX_BODY_SIZE) -> str | None:
    if body is None or len(body) <= max_size:
        return body
    if len(body) == max_size + len(TRUNCATION_MARKER) and body.endswith(TRUNCATION_MARKER):
        return body
    return body[:max_size] + TRUNCATION_MARKER


def truncate_response_body(
    body: str | None,
    truncated: bool = False,
    max_size: int = MAX_BODY_SIZE,
) -> tuple[str | None, bool]:
    if body is None or len(body) <= max_size:
        return body, truncated
    return body[:max_size], True


def apply_admission_policy(data: CallData, max_body_size: int = MAX_BODY_SIZE) -> CallData:
    """Redaction and truncation applied once at write time. Idempotent."""
    response_body, truncated = truncate_response_body(
        data.response_body, data.response_body_truncated, max_body_size
    )
    return replace(
        data,
        request_headers=redact_headers(data.request_headers),
        response_headers=redact_headers(data.response_headers),
        request_body=truncate_request_body(data.request_body, max_body_size),
        response_body=response_body,
        response_body_truncated=truncated,
    )


def classify_transaction(raw: dict[str, Any]) -> TransactionKind:
    if _is_har_entry(raw):
        url = str(raw["request"].get("url", ""))
        resource_type = str(raw.get("_resourceType") or "")
        mime_type = (raw.get("response") or {}).get("content", {}).get("mimeType")
    else:
        url = str(raw.get("url", ""))
        resource_type = str(raw.get("type") or raw.get("resourceType") or "")
        mime_type = raw.get("responseContentType")

    url_lower = url.lower()
    if resource_type == "websocket" or url_lower.startswith(_OPAQUE_SCHEMES):
        return TransactionKind.OPAQUE
    if is_likely_api_call(url, resource_type, mime_type):
        return TransactionKind.API
    return TransactionKind.STATIC


def is_likely_api_call(url: str, resource_type: str = "", mime_type: str | None = None) -> bool:
    if resource_type in ("xhr", "fetch"):
        return True

    if mime_type and any(t in mime_type for t in _API_MIME_TYPES):
        return True

    url_lower = url.lower()
    if any(pattern in url_lower for pattern in _API_URL_PATTERNS):
        return True

    if url_lower.endswith(_STATIC_EXTENSIONS):
        return False

    return resource_type in ("document", "")


def normalize_transaction(raw: dict[str, Any], max_body_size: int = MAX_BODY_SIZE) -> CallData:
    if not isinstance(raw, dict):
        raise ValueError(f"Raw transaction must be a mapping, got {type(raw).__name__}")

    data = _from_har_entry(raw) if _is_har_entry(raw) else _from_flat_record(raw)
    return apply_admission_policy(data, max_body_size)


def _is_har_entry(raw: dict[str, Any]) -> bool:
    return isinstance(raw.get("request"), dict)


def _from_har_entry(entry: dict[str, Any]) -> CallData:
    req = entry["request"]
    res = entry.get("response") or {}
    content = res.get("content") or {}
    post_data = req.get("postData") or {}

    return CallData(
        method=str(req.get("method", "GET")).upper(),
        url=str(req.get("url", "")),
        request_headers=req.get("headers"),
        request_body=post_data.get("text"),
        request_content_type=post_data.get("mimeType") or _header_value(req.get("headers"), "content-type"),
        status=_to_int(res.get("status")),
        status_text=res.get("statusText"),
        response_headers=res.get("headers"),
        response_body=_decode_content(content),
        response_content_type=content.get("mimeType") or _header_value(res.get("headers"), "content-type"),
        response_size=_to_int(content.get("size")) or 0,
        start_time=_parse_started(entry.get("startedDateTime")),
        duration=round(float(entry.get("time") or 0)),
    )


def _from_flat_record(record: dict[str, Any]) -> CallData:
    if "url" not in record:
        raise ValueError("Raw transaction has no url")

    request_headers = record.get("requestHeaders")
    response_headers = record.get("responseHeaders")
    response_body = _as_text(record.get("responseBody"))
    return CallData(
        method=str(record.get("method", "GET")).upper(),
        url=str(record["url"]),
        request_headers=request_headers,
        request_body=_as_text(record.get("requestBody")),
        request_content_type=record.get("requestContentType") or _header_value(request_headers, "content-type"),
        status=_to_int(record.get("status")),
        status_text=record.get("statusText"),
        response_headers=response_headers,
        response_body=response_body,
        response_body_truncated=bool(record.get("responseBodyTruncated", False)),
        response_content_type=record.get("responseContentType") or _header_value(response_headers, "content-type"),
        response_size=_to_int(record.get("responseSize")) or (len(response_body) if response_body else 0),
        start_time=_to_int(record.get("startTime")),
        duration=round(float(record.get("duration") or 0)),
    )


def _decode_content(content: dict[str, Any]) -> str | None:
    text = content.get("text")
    if not text:
        return None
    if content.get("encoding") == "base64":
        try:
            return base64.b64decode(text, validate=True).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return text
    return text


def _header_value(headers: Any, name: str) -> str | None:
    if not headers:
        return None
    wanted = name.lower()
    if isinstance(headers, dict):
        for key, value in headers.items():
            if str(key).lower() == wanted:
                return str(value)
        return None
    for header in headers:
        if isinstance(header, dict) and str(header.get("name", "")).lower() == wanted:
            return header.get("value") or None
    return None


def _as_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_started(value: Any) -> int | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return round(parsed.timestamp() * 1000)
