"""Login flows: attach to a running engine, or start one the bridge manages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from ...core.exceptions import PermanentError
from ...core.logging_utils import log_event
from .api import SimplexApi
from .client import ClientFactory, client_factory_for
from .config import SimplexBridgeConfig
from .errors import SimplexError
from .framework import BridgeFramework, LoginMetadata
from .ids import make_user_login_id
from .managed import ManagedSimplexProcess, ProcessSpawner
from .types import User

WS_URL_PATTERN = re.compile(r"^wss?://.+")


class LoginInputError(SimplexError, PermanentError):
    """A login step was given a missing or malformed value."""


@dataclass(frozen=True)
class LoginResult:
    login_id: str
    remote_name: str
    user: User
    metadata: LoginMetadata
    process: Optional[ManagedSimplexProcess] = None

    @property
    def instructions(self) -> str:
        verb = "started managed simplex-chat for" if self.metadata.managed else "logged in as"
        return f"Successfully {verb} {self.remote_name} (user ID {self.user.user_id})"


async def websocket_login(
    framework: BridgeFramework,
    config: SimplexBridgeConfig,
    ws_url: str,
    *,
    client_factory: Optional[ClientFactory] = None,
    logger: Optional[logging.Logger] = None,
) -> LoginResult:
    """Verify ``ws_url`` answers as a simplex-chat engine and persist the login."""
    logger = logger or logging.getLogger("simplex_bridge.simplex")
    ws_url = (ws_url or "").strip()
    if not ws_url:
        raise LoginInputError("ws_url is required")
    if not WS_URL_PATTERN.match(ws_url):
        raise LoginInputError(f"ws_url must start with ws:// or wss://: {ws_url!r}")
    factory = client_factory or client_factory_for(config, logger=logger)

    log_event(logger, logging.INFO, "simplex.login.verify", ws_url=ws_url)
    client = factory(ws_url)
    await client.connect()
    try:
        user = await SimplexApi(client, logger=logger).get_active_user()
    finally:
        await client.close()

    return await _complete_login(
        framework, user, LoginMetadata(ws_url=ws_url), logger=logger
    )


async def managed_login(
    framework: BridgeFramework,
    config: SimplexBridgeConfig,
    db_path: Union[str, Path],
    *,
    client_factory: Optional[ClientFactory] = None,
    spawner: Optional[ProcessSpawner] = None,
    port: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> LoginResult:
    """Start simplex-chat on ``db_path``, wait for it, and persist the login.

    The process is stopped again if any step after spawning fails.
    """
    logger = logger or logging.getLogger("simplex_bridge.simplex")
    if not str(db_path or "").strip():
        raise LoginInputError("db_path is required")
    factory = client_factory or client_factory_for(config, logger=logger)
    process = ManagedSimplexProcess(
        binary=config.simplex_binary,
        db_path=db_path,
        port=port,
        logger=logger,
        spawner=spawner,
    )
    await process.start()
    try:
        client = await process.connect_when_ready(
            factory,
            attempts=config.managed_ready_attempts,
            interval_seconds=config.managed_ready_interval_seconds,
        )
        try:
            user = await SimplexApi(client, logger=logger).get_active_user()
        finally:
            await client.close()
        metadata = LoginMetadata(ws_url=process.ws_url, db_path=str(db_path), managed=True)
        result = await _complete_login(framework, user, metadata, logger=logger)
    except BaseException:
        await process.stop()
        raise
    return replace(result, process=process)


async def _complete_login(
    framework: BridgeFramework,
    user: User,
    metadata: LoginMetadata,
    *,
    logger: logging.Logger,
) -> LoginResult:
    login_id = make_user_login_id(user.user_id)
    await framework.save_login_metadata(login_id, metadata)
    log_event(
        logger,
        logging.INFO,
        "simplex.login.completed",
        login_id=login_id,
        managed=metadata.managed,
        ws_url=metadata.ws_url,
    )
    return LoginResult(
        login_id=login_id,
        remote_name=user.profile.display_name,
        user=user,
        metadata=metadata,
    )
