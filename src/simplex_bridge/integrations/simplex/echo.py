from __future__ import annotations

import time
from typing import Callable, Dict, Tuple

DEFAULT_ECHO_TTL_SECONDS = 300.0

EchoKey = Tuple[str, str]


class PendingEchoRegistry:
    """Remembers messages we just sent so their event-stream echo is dropped.

    Entries are keyed by ``(portal_id, message_id)`` and removed the first time
    the echo is consumed. Entries whose echo never arrives expire after ``ttl``.
    Not thread-safe; used from the event loop only.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_ECHO_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._pending: Dict[EchoKey, float] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def record(self, portal_id: str, message_id: str) -> None:
        now = self._clock()
        self._prune(now)
        self._pending[(portal_id, message_id)] = now + self._ttl

    def consume(self, portal_id: str, message_id: str) -> bool:
        """Return True (and forget the entry) if this message is our own echo."""
        now = self._clock()
        expires_at = self._pending.pop((portal_id, message_id), None)
        if expires_at is None:
            return False
        return expires_at > now

    def clear(self) -> None:
        self._pending.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, expires_at in self._pending.items() if expires_at <= now]
        for key in expired:
            del self._pending[key]
