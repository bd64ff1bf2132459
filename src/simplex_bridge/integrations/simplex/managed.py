"""Running a bridge-owned simplex-chat process on a free local port."""

from __future__ import annotations

import asyncio
import logging
import socket
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from ...core.exceptions import PermanentError
from ...core.logging_utils import log_event
from ...core.retry import retry_transient
from .client import ClientFactory, SimplexClient
from .constants import (
    DEFAULT_MANAGED_READY_ATTEMPTS,
    DEFAULT_MANAGED_READY_INTERVAL_SECONDS,
)
from .errors import SimplexError

ProcessSpawner = Callable[..., Awaitable[Any]]


class ManagedProcessError(SimplexError, PermanentError):
    """The managed engine could not be started or exited on its own."""


def find_free_port(host: str = "127.0.0.1") -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return int(sock.getsockname()[1])


class ManagedSimplexProcess:
    def __init__(
        self,
        *,
        binary: str,
        db_path: Union[str, Path],
        port: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
        spawner: Optional[ProcessSpawner] = None,
    ) -> None:
        self._binary = binary
        self._db_path = str(db_path)
        self._port = port if port is not None else find_free_port()
        self._logger = logger or logging.getLogger(__name__)
        self._spawner: ProcessSpawner = spawner or asyncio.create_subprocess_exec
        self._process: Any = None

    @property
    def port(self) -> int:
        return self._port

    @property
    def ws_url(self) -> str:
        return f"ws://localhost:{self._port}"

    @property
    def command(self) -> Sequence[str]:
        return [self._binary, "-p", str(self._port), "-d", self._db_path]

    @property
    def returncode(self) -> Optional[int]:
        if self._process is None:
            return None
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        if self.is_running:
            return
        log_event(
            self._logger,
            logging.INFO,
            "simplex.managed.starting",
            binary=self._binary,
            port=self._port,
            db_path=self._db_path,
        )
        try:
            self._process = await self._spawner(
                *self.command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise ManagedProcessError(
                f"failed to start {self._binary}: {exc}",
                user_message="Could not start simplex-chat. Check simplex.simplex_binary.",
            ) from exc

    async def connect_when_ready(
        self,
        client_factory: ClientFactory,
        *,
        attempts: int = DEFAULT_MANAGED_READY_ATTEMPTS,
        interval_seconds: float = DEFAULT_MANAGED_READY_INTERVAL_SECONDS,
    ) -> SimplexClient:
        """Dial the process until it accepts a connection.

        Raises the last ``SimplexConnectionError`` once ``attempts`` dials have
        failed, or ``ManagedProcessError`` as soon as the process has exited.
        """

        @retry_transient(max_attempts=attempts, fixed_wait=interval_seconds)
        async def _dial() -> SimplexClient:
            returncode = self.returncode
            if returncode is not None:
                raise ManagedProcessError(
                    f"{self._binary} exited with code {returncode} before accepting connections"
                )
            client = client_factory(self.ws_url)
            await client.connect()
            return client

        client = await _dial()
        log_event(
            self._logger, logging.INFO, "simplex.managed.ready", ws_url=self.ws_url
        )
        return client

    async def stop(self, *, timeout: float = 5.0) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        log_event(
            self._logger, logging.INFO, "simplex.managed.stopping", pid=process.pid
        )
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            log_event(
                self._logger, logging.WARNING, "simplex.managed.kill", pid=process.pid
            )
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
