from __future__ import annotations

from typing import Any

from api_logger.timeutil import iso_from_ms


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len

    def short_id(self, value: str) -> str:
        # Ids look like session_<ms>_<rand>; the random tail is what tells them apart.
        if len(value) <= self._short_id_len:
            return value
        return value[-self._short_id_len :]

    def format_session_list_entry(self, session: dict[str, Any], *, active_session_id: str | None) -> str:
        marker = "*" if session["id"] == active_session_id else " "
        source = session.get("sourceUrl") or "-"
        return (
            f"{self._line_prefix}{marker} {session['name']} [{self.short_id(session['id'])}] "
            f"(id={session['id']}) (status={session['status']}, calls={session['callCount']}, "
            f"updated={iso_from_ms(session['updatedAt'])}, source={source})"
        )

    def format_state_lines(self, state: dict[str, Any]) -> list[str]:
        lines = [f"{self._line_prefix}State: {state['currentState']}"]
        if state.get("sessionId"):
            lines.append(
                f"{self._line_prefix}- Recording into: {state['sessionId']} "
                f"({len(state.get('recordedRequests') or [])} calls this run)"
            )
        if state.get("selectedSessionId") and state.get("selectedSessionId") != state.get("sessionId"):
            lines.append(f"{self._line_prefix}- Selected: {state['selectedSessionId']}")
        if state.get("pauseTime"):
            lines.append(f"{self._line_prefix}- Paused since: {iso_from_ms(state['pauseTime'])}")
        error = state.get("error")
        if error:
            lines.append(
                f"{self._line_prefix}- Error: {error['message']} "
                f"({error['fromState']} -> {error['toState']})"
            )
        if state.get("lastExport"):
            lines.append(f"{self._line_prefix}- Last export: {state['lastExport']}")
        return lines
