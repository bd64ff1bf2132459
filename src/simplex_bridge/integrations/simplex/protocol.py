"""Wire framing for the chat engine WebSocket API.

Outbound frames are ``{"corrId": "<n>", "cmd": "<command>"}``. Inbound frames are
``{"corrId": "<n>"?, "resp": {"type": "<tag>", ...}}``; a frame is a response only
when its ``corrId`` matches an outstanding command, otherwise it is an event.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .constants import LOG_PREVIEW_CHARS
from .errors import SimplexProtocolError

CHAT_ERROR_RESPONSE_TYPES = frozenset({"chatCmdError", "chatError"})


@dataclass(frozen=True)
class ResponseFrame:
    corr_id: Optional[str]
    resp: Optional[dict[str, Any]]
    resp_type: Optional[str] = None

    @property
    def preview(self) -> str:
        """Truncated rendering of ``resp`` for log lines; encoded on each access."""
        if self.resp is None:
            return ""
        return preview_text(self.resp)


@dataclass(frozen=True)
class RawEvent:
    """An inbound frame not claimed by any pending command."""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    corr_id: Optional[str] = None


def build_command_frame(corr_id: str, command: str) -> str:
    if not isinstance(command, str) or not command:
        raise SimplexProtocolError("command must be a non-empty string")
    return json.dumps({"corrId": corr_id, "cmd": command}, ensure_ascii=False)


def preview_text(value: Any, limit: int = LOG_PREVIEW_CHARS) -> str:
    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False, default=str)
    elif isinstance(value, bytes):
        text = value.decode("utf-8", errors="replace")
    else:
        text = str(value)
    return text[:limit]


def parse_response_frame(frame: str | bytes) -> ResponseFrame:
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SimplexProtocolError(f"frame is not valid UTF-8: {exc}") from exc
    try:
        payload = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise SimplexProtocolError(f"frame is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise SimplexProtocolError("frame must be a JSON object")

    corr_raw = payload.get("corrId")
    if corr_raw is None:
        corr_id = None
    elif isinstance(corr_raw, (str, int)) and not isinstance(corr_raw, bool):
        corr_id = str(corr_raw)
    else:
        raise SimplexProtocolError(f"frame has invalid corrId: {corr_raw!r}")

    resp_raw = payload.get("resp")
    if resp_raw is not None and not isinstance(resp_raw, dict):
        raise SimplexProtocolError("frame resp must be a JSON object")
    resp_type = None
    if isinstance(resp_raw, dict):
        tag = resp_raw.get("type")
        resp_type = tag if isinstance(tag, str) and tag else None
    return ResponseFrame(
        corr_id=corr_id,
        resp=resp_raw,
        resp_type=resp_type,
    )


def response_type(resp: Any) -> Optional[str]:
    if isinstance(resp, dict):
        tag = resp.get("type")
        if isinstance(tag, str) and tag:
            return tag
    return None


def chat_error_type(resp: dict[str, Any]) -> Optional[str]:
    """Best-effort extraction of the inner error tag of a chat error response."""
    error = resp.get("chatError")
    if not isinstance(error, dict):
        return None
    for key in ("errorType", "storeError", "agentError", "dbError"):
        inner = error.get(key)
        if isinstance(inner, dict) and isinstance(inner.get("type"), str):
            return str(inner["type"])
    tag = error.get("type")
    return tag if isinstance(tag, str) else None
