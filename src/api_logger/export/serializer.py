"""JSONL export of recorded sessions.

The artifact is UTF-8 text with one JSON object per line: a single ``meta``
line (session identity plus summary) followed by one ``call`` line per
recorded call, in ascending ``seq`` order.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from typing import Any
from urllib.parse import urlsplit

from api_logger import __version__
from api_logger.errors import SessionNotFound
from api_logger.storage.models import Call, Session
from api_logger.storage.sessions import SessionStore
from api_logger.timeutil import iso_from_ms, now_ms

EXPORT_FORMAT = "api-trace-jsonl"
EXPORT_VERSION = 1
TOP_ENDPOINTS = 20


class ExportSerializer:
    def __init__(self, sessions: SessionStore):
        self._sessions = sessions

    def export_session(self, session_id: str) -> str:
        session, calls = self._load(session_id)
        lines = [_dumps(build_meta(session, calls))]
        lines.extend(_dumps(build_call_line(call)) for call in calls)
        return "\n".join(lines)

    def export_session_compact(self, session_id: str) -> str:
        session, calls = self._load(session_id)
        output = {
            "meta": {
                "name": session.name,
                "url": session.source_url,
                "recorded": iso_from_ms(session.created_at),
                "callCount": len(calls),
            },
            "calls": [
                {
                    "seq": call.seq,
                    "method": call.method,
                    "url": simplify_url(call.url),
                    "status": call.status,
                    "duration": call.duration,
                    "request": _try_parse_json(call.request_body),
                    "response": _try_parse_json(call.response_body),
                }
                for call in calls
            ],
        }
        return json.dumps(output, ensure_ascii=False, allow_nan=False, indent=2)

    def _load(self, session_id: str) -> tuple[Session, list[Call]]:
        session = self._sessions.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session, self._sessions.get_calls_by_session(session_id)


def build_meta(session: Session, calls: list[Call]) -> dict[str, Any]:
    return {
        "type": "meta",
        "format": EXPORT_FORMAT,
        "version": EXPORT_VERSION,
        "session": {
            "id": session.id,
            "name": session.name,
            "startedAt": iso_from_ms(session.created_at),
            "endedAt": iso_from_ms(session.updated_at),
            "status": session.status,
            "source": {
                "tool": "api-logger",
                "version": __version__,
                "tabUrl": session.source_url,
            },
        },
        "summary": generate_summary(calls),
    }


def build_call_line(call: Call) -> dict[str, Any]:
    return {
        "type": "call",
        "seq": call.seq,
        "id": f"call_{call.id}",
        "timestamp": iso_from_ms(call.timestamp),
        "duration": call.duration,
        "request": {
            "method": call.method,
            "url": call.url,
            "headers": call.request_headers,
            "body": format_body(call.request_body, call.request_content_type),
        },
        "response": {
            "status": call.status,
            "statusText": call.status_text,
            "headers": call.response_headers,
            "body": format_body(call.response_body, call.response_content_type, call.response_body_truncated),
        },
    }


def generate_summary(calls: list[Call]) -> dict[str, Any]:
    endpoints: Counter[str] = Counter()
    domains: dict[str, None] = {}
    errors = 0

    for call in calls:
        endpoints[f"{call.method} {simplify_url(call.url)}"] += 1

        hostname = _hostname(call.url)
        if hostname:
            domains.setdefault(hostname, None)

        if call.status is not None and call.status >= 400:
            errors += 1

    # Counter keeps first-seen order and sorted() is stable, so ties stay in that order.
    ranked = sorted(endpoints.items(), key=lambda item: item[1], reverse=True)
    return {
        "calls": len(calls),
        "errors": errors,
        "domains": list(domains),
        "endpoints": [{"key": key, "count": count} for key, count in ranked[:TOP_ENDPOINTS]],
    }


def format_body(body: str | None, content_type: str | None, truncated: bool = False) -> dict[str, Any] | None:
    if not body:
        return None

    result: dict[str, Any] = {"contentType": content_type, "size": len(body)}
    parsed = False
    if content_type and "json" in content_type.lower():
        try:
            result["data"] = parse_json_strict(body)
            parsed = True
        except (ValueError, RecursionError):
            pass
    if not parsed:
        result["text"] = body
    if truncated:
        result["truncated"] = True
    return result


def simplify_url(url: str) -> str:
    """Drop query string and fragment, keeping ``scheme://host/path``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def suggest_filename(session: Session, timestamp_ms: int | None = None) -> str:
    safe_name = re.sub(r"[^a-zA-Z0-9]", "-", session.name)
    return f"api-trace-{safe_name}-{timestamp_ms if timestamp_ms is not None else now_ms()}.jsonl"


def _hostname(url: str) -> str | None:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def parse_json_strict(text: str) -> Any:
    """Parse ``text`` as standard JSON whose strings survive UTF-8 encoding.

    ``NaN``, ``Infinity``, overflowing numbers and escaped lone surrogates
    raise ``ValueError``.
    """
    data = json.loads(text, parse_constant=_reject_constant)
    json.dumps(data, ensure_ascii=False, allow_nan=False).encode("utf-8")
    return data


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _try_parse_json(value: str | None) -> Any:
    if not value:
        return None
    try:
        return parse_json_strict(value)
    except (ValueError, RecursionError):
        return value


def _dumps(obj: dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
