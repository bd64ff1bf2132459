"""Connection lifecycle for one login: dial, report state, resync, consume, redial."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from functools import partial
from typing import Callable, Optional

from ...core.logging_utils import log_event
from .api import SimplexApi
from .client import ClientFactory, SimplexClient, client_factory_for
from .constants import DEFAULT_RECONNECT_MAX_SECONDS
from .errors import SimplexConnectionError
from .framework import BridgeState, BridgeStateEvent
from .ingest import EventIngestor
from .session import SimplexSession
from .sync import sync_chats

Backoff = Callable[[int], float]

NO_WS_URL_MESSAGE = "No WebSocket URL configured. Please log in again."
ERROR_CONNECT = "websocket-connect-error"
ERROR_CLOSED = "websocket-closed"
# powers of two past this are far beyond any sane cap
_MAX_EXPONENT = 32


def calculate_reconnect_backoff(
    attempt: int,
    *,
    max_seconds: float = DEFAULT_RECONNECT_MAX_SECONDS,
) -> float:
    """Seconds to wait before dial attempt ``attempt + 1``: ``2**attempt``, capped."""
    normalized_attempt = max(attempt, 0)
    if max_seconds <= 0.0:
        return 0.0
    if normalized_attempt >= _MAX_EXPONENT:
        return float(max_seconds)
    return float(min(2**normalized_attempt, max_seconds))


class SimplexConnection:
    """Keeps one login connected until ``disconnect`` is called.

    A failed dial is retried after ``calculate_reconnect_backoff(attempt)``
    seconds, forever. A connection whose event stream ends is replaced by a
    fresh client with the attempt counter back at zero. Every established
    connection gets a new ``SimplexApi`` on the session and a chat sync.
    """

    def __init__(
        self,
        session: SimplexSession,
        *,
        ws_url: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
        backoff: Optional[Backoff] = None,
    ) -> None:
        self._session = session
        self._logger = session.logger
        self._ws_url = ws_url
        self._client_factory = client_factory or client_factory_for(
            session.config, logger=self._logger
        )
        self._backoff = backoff or partial(
            calculate_reconnect_backoff,
            max_seconds=session.config.reconnect_max_seconds,
        )
        self._ingestor = EventIngestor(session)
        self._stop_event = asyncio.Event()
        self._client: Optional[SimplexClient] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._sync_task: Optional[asyncio.Task[int]] = None
        self._connected = asyncio.Event()

    @property
    def ws_url(self) -> Optional[str]:
        return (
            self._ws_url
            or self._session.metadata.ws_url
            or self._session.config.default_ws_url
        )

    @property
    def client(self) -> Optional[SimplexClient]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def connect(self) -> asyncio.Task[None]:
        """Start the lifecycle in the background; returns its task."""
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run())
        return self._task

    async def wait_connected(self) -> None:
        await self._connected.wait()

    async def disconnect(self) -> None:
        self._stop_event.set()
        client = self._client
        if client is not None:
            await client.close()
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=5.0)
            except asyncio.TimeoutError:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        await self._cancel_sync()
        self._client = None
        self._session.api = None
        self._connected.clear()

    async def run(self) -> None:
        ws_url = self.ws_url
        if not ws_url:
            await self._report(
                BridgeState(
                    state_event=BridgeStateEvent.BAD_CREDENTIALS,
                    message=NO_WS_URL_MESSAGE,
                )
            )
            return

        attempt = 0
        while not self._stop_event.is_set():
            if attempt == 0:
                await self._report(BridgeState(state_event=BridgeStateEvent.CONNECTING))
            client = self._client_factory(ws_url)
            try:
                await client.connect()
            except SimplexConnectionError as exc:
                delay = self._backoff(attempt)
                attempt += 1
                log_event(
                    self._logger,
                    logging.WARNING,
                    "simplex.connection.dial_failed",
                    ws_url=ws_url,
                    attempt=attempt,
                    retry_in_seconds=delay,
                    exc=exc,
                )
                await self._report(
                    BridgeState(
                        state_event=BridgeStateEvent.TRANSIENT_DISCONNECT,
                        error=ERROR_CONNECT,
                        message=str(exc),
                    )
                )
                if await self._wait_or_stop(delay):
                    break
                continue

            attempt = 0
            await self._serve(client)
            if self._stop_event.is_set():
                break
            log_event(
                self._logger, logging.INFO, "simplex.connection.closed", ws_url=ws_url
            )
            await self._report(
                BridgeState(
                    state_event=BridgeStateEvent.TRANSIENT_DISCONNECT,
                    error=ERROR_CLOSED,
                    message="WebSocket connection closed",
                )
            )

    async def _serve(self, client: SimplexClient) -> None:
        session = self._session
        self._client = client
        session.api = SimplexApi(client, logger=self._logger)
        self._connected.set()
        log_event(
            self._logger,
            logging.INFO,
            "simplex.connection.connected",
            ws_url=client.ws_url,
            login_id=session.login_id,
        )
        await self._report(BridgeState(state_event=BridgeStateEvent.CONNECTED))
        self._sync_task = asyncio.create_task(sync_chats(session))
        try:
            async for raw in client.events():
                await self._ingestor.handle(raw)
        finally:
            self._connected.clear()
            session.api = None
            self._client = None
            await self._cancel_sync()
            await client.close()

    async def _wait_or_stop(self, delay: float) -> bool:
        """Sleep ``delay`` seconds; True if ``disconnect`` interrupted the wait."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _cancel_sync(self) -> None:
        task = self._sync_task
        self._sync_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _report(self, state: BridgeState) -> None:
        try:
            await self._session.framework.send_bridge_state(self._session.login_id, state)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.connection.state_report_failed",
                state=state.state_event.value,
                exc=exc,
            )

