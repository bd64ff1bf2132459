from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ...core.logging_utils import log_event
from .config import SimplexBridgeConfig
from .constants import (
    CLOSE_REASON_SHUTDOWN,
    DEFAULT_DIAL_TIMEOUT_SECONDS,
    DEFAULT_EVENT_QUEUE_SIZE,
    DEFAULT_ONESHOT_TIMEOUT_SECONDS,
    SIMPLEX_MAX_MESSAGE_BYTES,
)
from .errors import (
    SimplexConnectionClosed,
    SimplexConnectionError,
    SimplexProtocolError,
)
from .protocol import RawEvent, build_command_frame, parse_response_frame

Connector = Callable[..., Awaitable[Any]]


class _EventsClosed:
    pass


_EVENTS_CLOSED = _EventsClosed()
EventQueueItem = Union[RawEvent, _EventsClosed]


class SimplexClient:
    """Multiplexes commands and events over one engine WebSocket.

    ``send`` tags each command with a fresh correlation id and suspends until the
    reader delivers the matching response. Frames without a matching pending
    command go to a bounded event queue consumed through ``events()``. When the
    socket fails, every pending command fails with ``SimplexConnectionClosed`` and
    the event stream ends; a client is never reconnected in place.
    """

    def __init__(
        self,
        ws_url: str,
        *,
        logger: Optional[logging.Logger] = None,
        event_queue_size: int = DEFAULT_EVENT_QUEUE_SIZE,
        max_message_bytes: int = SIMPLEX_MAX_MESSAGE_BYTES,
        dial_timeout_seconds: float = DEFAULT_DIAL_TIMEOUT_SECONDS,
        oneshot_timeout_seconds: float = DEFAULT_ONESHOT_TIMEOUT_SECONDS,
        connector: Optional[Connector] = None,
    ) -> None:
        if not ws_url:
            raise ValueError("ws_url is required")
        self._ws_url = ws_url
        self._logger = logger or logging.getLogger(__name__)
        self._event_capacity = max(1, int(event_queue_size))
        self._max_message_bytes = max(int(max_message_bytes), SIMPLEX_MAX_MESSAGE_BYTES)
        self._dial_timeout = dial_timeout_seconds
        self._oneshot_timeout = oneshot_timeout_seconds
        self._connector: Connector = connector or websockets.connect
        self._corr_ids = itertools.count(1)
        self._websocket: Any = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._pending: Dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._pending_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        # One slot beyond capacity is reserved for the end-of-stream marker.
        self._events: asyncio.Queue[EventQueueItem] = asyncio.Queue(
            maxsize=self._event_capacity + 1
        )
        self._torn_down = False
        self._events_closed = False
        self._closing = False
        self._disconnected = asyncio.Event()

    @property
    def ws_url(self) -> str:
        return self._ws_url

    @property
    def is_connected(self) -> bool:
        return self._websocket is not None and not self._torn_down

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        if self._websocket is not None or self._torn_down:
            raise SimplexConnectionError("client already used; create a new one")
        self._websocket = await self._dial()
        log_event(self._logger, logging.INFO, "simplex.ws.connected", ws_url=self._ws_url)
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        self._closing = True
        websocket = self._websocket
        if websocket is not None:
            with contextlib.suppress(Exception):
                await websocket.close(code=1000, reason=CLOSE_REASON_SHUTDOWN)
        task = self._reader_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=5.0)
            except asyncio.TimeoutError:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        await self._teardown()

    async def wait_closed(self) -> None:
        await self._disconnected.wait()

    async def send(self, command: str) -> dict[str, Any]:
        """Send ``command`` and return the ``resp`` object answering it."""
        websocket = self._websocket
        if websocket is None:
            raise SimplexConnectionClosed("SimpleX connection is not established")
        corr_id = self._next_corr_id()
        frame = build_command_frame(corr_id, command)
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        async with self._pending_lock:
            if self._torn_down:
                raise SimplexConnectionClosed()
            self._pending[corr_id] = future
        log_event(
            self._logger,
            logging.DEBUG,
            "simplex.ws.request",
            corr_id=corr_id,
            command=_command_name(command),
        )
        try:
            try:
                async with self._write_lock:
                    await websocket.send(frame)
            except ConnectionClosed as exc:
                raise SimplexConnectionClosed(
                    f"SimpleX connection closed during write: {exc}"
                ) from exc
            except (OSError, WebSocketException) as exc:
                raise SimplexConnectionError(f"SimpleX write failed: {exc}") from exc
            return await future
        finally:
            async with self._pending_lock:
                self._pending.pop(corr_id, None)

    async def send_once(self, command: str) -> dict[str, Any]:
        """Send ``command`` over a disposable connection and return its response.

        Frames other than the answer to this command are discarded.
        """
        corr_id = self._next_corr_id()
        try:
            return await asyncio.wait_for(
                self._send_once(corr_id, command), timeout=self._oneshot_timeout
            )
        except asyncio.TimeoutError as exc:
            raise SimplexConnectionError(
                f"one-shot command timed out after {self._oneshot_timeout}s"
            ) from exc

    async def send_with_fallback(self, command: str) -> dict[str, Any]:
        """Send on the persistent connection, retrying once on a fresh one."""
        try:
            return await self.send(command)
        except SimplexConnectionError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.send.fallback",
                command=_command_name(command),
                exc=exc,
            )
        return await self.send_once(command)

    async def events(self) -> AsyncIterator[RawEvent]:
        while True:
            item = await self._events.get()
            if isinstance(item, _EventsClosed):
                # Leave the marker for any other consumer.
                self._events.put_nowait(item)
                return
            yield item

    async def _dial(self) -> Any:
        try:
            return await asyncio.wait_for(
                self._connector(
                    self._ws_url,
                    max_size=self._max_message_bytes,
                    open_timeout=self._dial_timeout,
                ),
                timeout=self._dial_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SimplexConnectionError(
                f"timed out dialing SimpleX at {self._ws_url}"
            ) from exc
        except (OSError, WebSocketException) as exc:
            raise SimplexConnectionError(
                f"failed to dial SimpleX at {self._ws_url}: {exc}"
            ) from exc

    async def _send_once(self, corr_id: str, command: str) -> dict[str, Any]:
        websocket = await self._dial()
        log_event(
            self._logger,
            logging.INFO,
            "simplex.oneshot.request",
            corr_id=corr_id,
            command=_command_name(command),
        )
        try:
            try:
                await websocket.send(build_command_frame(corr_id, command))
            except (OSError, WebSocketException) as exc:
                raise SimplexConnectionError(f"one-shot write failed: {exc}") from exc
            while True:
                try:
                    raw = await websocket.recv()
                except (OSError, WebSocketException) as exc:
                    raise SimplexConnectionError(f"one-shot read failed: {exc}") from exc
                try:
                    frame = parse_response_frame(raw)
                except SimplexProtocolError as exc:
                    log_event(
                        self._logger,
                        logging.DEBUG,
                        "simplex.oneshot.frame_invalid",
                        exc=exc,
                    )
                    continue
                if frame.corr_id != corr_id:
                    continue
                if frame.resp is None or frame.resp_type is None:
                    raise SimplexProtocolError(
                        f"one-shot response for {corr_id} has no typed resp"
                    )
                return frame.resp
        finally:
            with contextlib.suppress(Exception):
                await websocket.close(code=1000, reason="one-shot done")

    def _next_corr_id(self) -> str:
        return str(next(self._corr_ids))

    async def _read_loop(self) -> None:
        websocket = self._websocket
        try:
            while True:
                raw = await websocket.recv()
                await self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            log_event(
                self._logger,
                logging.INFO if self._closing else logging.WARNING,
                "simplex.ws.closed",
                ws_url=self._ws_url,
                exc=exc,
            )
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.ws.read_failed",
                ws_url=self._ws_url,
                exc=exc,
            )
        finally:
            await self._teardown()

    async def _handle_frame(self, raw: Any) -> None:
        try:
            frame = parse_response_frame(raw)
        except SimplexProtocolError as exc:
            log_event(self._logger, logging.WARNING, "simplex.ws.frame_invalid", exc=exc)
            return
        if frame.corr_id is not None:
            async with self._pending_lock:
                future = self._pending.pop(frame.corr_id, None)
            debug = self._logger.isEnabledFor(logging.DEBUG)
            if future is not None:
                if debug:
                    log_event(
                        self._logger,
                        logging.DEBUG,
                        "simplex.ws.response",
                        corr_id=frame.corr_id,
                        resp_type=frame.resp_type,
                        preview=frame.preview,
                    )
                if future.done():
                    return
                if frame.resp is None:
                    future.set_exception(
                        SimplexProtocolError(
                            f"response for {frame.corr_id} is missing resp"
                        )
                    )
                    return
                future.set_result(frame.resp)
                return
            if debug:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "simplex.ws.response.unmatched",
                    corr_id=frame.corr_id,
                    resp_type=frame.resp_type,
                    preview=frame.preview,
                )
        if frame.resp is None or frame.resp_type is None:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.ws.event_untyped",
                corr_id=frame.corr_id,
                preview=frame.preview,
            )
            return
        self._enqueue_event(
            RawEvent(type=frame.resp_type, payload=frame.resp, corr_id=frame.corr_id)
        )

    def _enqueue_event(self, event: RawEvent) -> None:
        if self._events_closed or self._events.qsize() >= self._event_capacity:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.ws.event_dropped",
                event_type=event.type,
                capacity=self._event_capacity,
            )
            return
        self._events.put_nowait(event)

    async def _teardown(self) -> None:
        async with self._pending_lock:
            if self._torn_down:
                return
            self._torn_down = True
            pending = list(self._pending.items())
            self._pending.clear()
        for _corr_id, future in pending:
            if not future.done():
                future.set_exception(SimplexConnectionClosed())
        if pending:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.ws.pending_failed",
                pending_requests=len(pending),
            )
        self._close_events()
        self._disconnected.set()

    def _close_events(self) -> None:
        if self._events_closed:
            return
        self._events_closed = True
        self._events.put_nowait(_EVENTS_CLOSED)


def _command_name(command: str) -> str:
    return command.split(" ", 1)[0][:40] if command else ""


ClientFactory = Callable[[str], SimplexClient]


def client_factory_for(
    config: SimplexBridgeConfig, *, logger: Optional[logging.Logger] = None
) -> ClientFactory:
    """Return a factory building clients with the transport limits from ``config``."""

    def _factory(ws_url: str) -> SimplexClient:
        return SimplexClient(
            ws_url,
            logger=logger,
            event_queue_size=config.event_queue_size,
            max_message_bytes=config.max_message_bytes,
            dial_timeout_seconds=config.dial_timeout_seconds,
            oneshot_timeout_seconds=config.oneshot_timeout_seconds,
        )

    return _factory
