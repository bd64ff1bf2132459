"""Error hierarchy for the SimpleX integration.

Transport failures are transient (the connection lifecycle reconnects), protocol
failures are permanent for the operation that hit them but leave the connection
up, and application-level degradations are handled where they occur.
"""

from __future__ import annotations

from typing import Any, Optional

from ...core.exceptions import BridgeError, PermanentError, TransientError


class SimplexError(BridgeError):
    """Base SimpleX integration error."""


class SimplexConfigError(SimplexError, PermanentError):
    """Invalid SimpleX bridge configuration."""


class SimplexConnectionError(SimplexError, TransientError):
    """Dial, read or write failure on the engine WebSocket."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        if user_message is None:
            user_message = "SimpleX is temporarily unavailable. Reconnecting..."
        super().__init__(message, user_message=user_message)


class SimplexConnectionClosed(SimplexConnectionError):
    """Raised for requests still pending when the connection goes away."""

    def __init__(self, message: str = "SimpleX connection closed") -> None:
        super().__init__(message)


class SimplexProtocolError(SimplexError, PermanentError):
    """Malformed frame or payload from the engine."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        if user_message is None:
            user_message = "SimpleX protocol error. Check logs."
        super().__init__(message, user_message=user_message)


class SimplexUnexpectedResponse(SimplexProtocolError):
    """A command was answered with a response type other than the expected one."""

    def __init__(
        self,
        *,
        command: str,
        expected: tuple[str, ...],
        actual: Optional[str],
        preview: str = "",
    ) -> None:
        expected_text = " or ".join(expected)
        super().__init__(
            f"unexpected response to {command!r}: expected {expected_text}, got {actual}"
        )
        self.command = command
        self.expected = expected
        self.actual = actual
        self.preview = preview


class SimplexChatError(SimplexProtocolError):
    """The engine answered a command with a chat error payload."""

    def __init__(
        self, *, command: str, error_type: Optional[str], data: Optional[Any] = None
    ) -> None:
        super().__init__(
            f"chat error for {command!r}: {error_type or 'unknown'}",
            user_message=f"SimpleX rejected the request ({error_type or 'unknown'}).",
        )
        self.command = command
        self.error_type = error_type
        self.data = data


class InvalidChatIdentifier(SimplexError, ValueError):
    """Malformed portal, user or message key."""


class NotLoggedInError(SimplexError, PermanentError):
    """An operation needed a live connection but none is established."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity

    def __init__(self, message: str = "not logged in") -> None:
        super().__init__(message, user_message="SimpleX is not connected.")


class MediaUnavailableError(SimplexError, TransientError):
    """A file could not be resolved locally or uploaded."""


class SendFailure(SimplexError):
    """Wraps an outbound failure that must be reported to the sender."""

    def __init__(self, error: BaseException, *, send_notice: bool = True) -> None:
        user_message = getattr(error, "user_message", None)
        super().__init__(str(error), user_message=user_message)
        self.error = error
        self.send_notice = send_notice


def wrap_send_error(error: BaseException, *, send_notice: bool = True) -> SendFailure:
    if isinstance(error, SendFailure):
        return error
    return SendFailure(error, send_notice=send_notice)
