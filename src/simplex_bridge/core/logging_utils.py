from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

_MAX_FIELD_CHARS = 500
_REDACTED = "<redacted>"
_SENSITIVE_KEYS = ("token", "secret", "password", "authorization", "api_key")
_DATA_URI_RE = re.compile(r"data:[\w/+.-]+;base64,[A-Za-z0-9+/=_-]{32,}")


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_KEYS)


def sanitize_log_value(value: Any, *, limit: int = _MAX_FIELD_CHARS) -> Any:
    """Return a JSON-safe, size-bounded rendering of ``value`` for log lines."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, BaseException):
        return sanitize_log_value(f"{type(value).__name__}: {value}", limit=limit)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        text = _DATA_URI_RE.sub("data:<omitted>", value)
        if len(text) > limit:
            return text[:limit] + f"...(+{len(text) - limit} chars)"
        return text
    if isinstance(value, dict):
        return {
            str(key): (
                _REDACTED
                if _is_sensitive_key(str(key))
                else sanitize_log_value(item, limit=limit)
            )
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_log_value(item, limit=limit) for item in value]
    return sanitize_log_value(str(value), limit=limit)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit a single structured log line: ``{"event": ..., **fields}``."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = _REDACTED if _is_sensitive_key(key) else sanitize_log_value(value)
    if exc is not None:
        payload["error"] = sanitize_log_value(exc)
        payload["error_type"] = type(exc).__name__
    try:
        message = json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        message = f"{event} {payload!r}"
    logger.log(level, message, exc_info=exc if level >= logging.ERROR else None)


__all__ = ["log_event", "sanitize_log_value"]
