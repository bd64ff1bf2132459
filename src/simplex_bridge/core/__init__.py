"""Core runtime primitives."""

from .exceptions import BridgeError, ConfigError, PermanentError, TransientError
from .logging_utils import log_event, sanitize_log_value
from .retry import retry_transient

__all__ = [
    "BridgeError",
    "ConfigError",
    "PermanentError",
    "TransientError",
    "log_event",
    "retry_transient",
    "sanitize_log_value",
]
