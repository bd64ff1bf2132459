"""Shared error taxonomy.

Adapter-layer errors compose these classes so retry and severity behavior stays
consistent: anything deriving from ``TransientError`` is safe to retry (and is
what ``core.retry.retry_transient`` retries), anything deriving from
``PermanentError`` is not.
"""

from __future__ import annotations

from typing import Optional


class BridgeError(Exception):
    """Base error for the bridge."""

    recoverable: bool = False
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(BridgeError):
    """Failure that is expected to clear on retry or reconnect."""

    recoverable = True
    severity = "warning"


class PermanentError(BridgeError):
    """Failure that retrying will not fix."""

    recoverable = False
    severity = "error"


class ConfigError(PermanentError):
    """Invalid or unreadable configuration."""


__all__ = ["BridgeError", "ConfigError", "PermanentError", "TransientError"]
