"""Per-login facade the bridging framework drives."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

from ...core.logging_utils import log_event
from .backfill import FetchMessagesResponse, fetch_messages
from .chatinfo import get_chat_info, get_user_info
from .client import ClientFactory
from .config import SimplexBridgeConfig
from .connection import Backoff, SimplexConnection
from .framework import BridgeFramework, ChatInfo, LoginMetadata, PortalKey, UserInfo
from .linkpreview import LinkPreviewFetcher
from .login import LoginResult
from .managed import ManagedSimplexProcess, ProcessSpawner
from .outbound import OutboundSender, OutgoingMessage, SendResult, Thumbnailer
from .session import SimplexSession
from .sync import sync_chats


class SimplexBridge:
    def __init__(
        self,
        config: SimplexBridgeConfig,
        framework: BridgeFramework,
        login_id: str,
        *,
        metadata: Optional[LoginMetadata] = None,
        logger: Optional[logging.Logger] = None,
        client_factory: Optional[ClientFactory] = None,
        backoff: Optional[Backoff] = None,
        link_previews: Optional[LinkPreviewFetcher] = None,
        thumbnailer: Optional[Thumbnailer] = None,
        process: Optional[ManagedSimplexProcess] = None,
        spawner: Optional[ProcessSpawner] = None,
    ) -> None:
        self._logger = logger or logging.getLogger("simplex_bridge.simplex")
        self.session = SimplexSession(
            config=config,
            framework=framework,
            login_id=login_id,
            metadata=metadata or LoginMetadata(),
            logger=self._logger,
        )
        self.connection = SimplexConnection(
            self.session, client_factory=client_factory, backoff=backoff
        )
        self._owns_link_previews = link_previews is None and config.link_previews
        if self._owns_link_previews:
            link_previews = LinkPreviewFetcher(
                timeout_seconds=config.link_preview_timeout_seconds,
                logger=self._logger,
            )
        self._link_previews = link_previews
        self.outbound = OutboundSender(
            self.session, link_previews=link_previews, thumbnailer=thumbnailer
        )
        self._process = process
        self._spawner = spawner

    @classmethod
    def from_login(
        cls,
        config: SimplexBridgeConfig,
        framework: BridgeFramework,
        result: LoginResult,
        **kwargs,
    ) -> "SimplexBridge":
        return cls(
            config,
            framework,
            result.login_id,
            metadata=result.metadata,
            process=result.process,
            **kwargs,
        )

    @property
    def login_id(self) -> str:
        return self.session.login_id

    @property
    def is_logged_in(self) -> bool:
        return self.session.is_logged_in

    def is_this_user(self, user_id: str) -> bool:
        return self.session.is_this_user(user_id)

    async def connect(self) -> None:
        """Start (or restart) the managed engine if any, then the connection loop."""
        if self.session.metadata.managed:
            await self._ensure_managed_process()
        self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()
        if self._process is not None:
            await self._process.stop()

    async def logout_remote(self) -> None:
        await self.disconnect()

    async def close(self) -> None:
        await self.disconnect()
        if self._owns_link_previews and self._link_previews is not None:
            await self._link_previews.close()

    async def __aenter__(self) -> "SimplexBridge":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def send_message(self, message: OutgoingMessage) -> SendResult:
        return await self.outbound.send_message(message)

    async def edit_message(self, portal_id: str, target_message_id: str, body: str) -> None:
        await self.outbound.edit_message(portal_id, target_message_id, body)

    async def delete_message(self, portal_id: str, target_message_id: str) -> None:
        await self.outbound.delete_message(portal_id, target_message_id)

    async def add_reaction(
        self, portal_id: str, target_message_id: str, emoji: str
    ) -> Optional[str]:
        return await self.outbound.add_reaction(portal_id, target_message_id, emoji)

    async def remove_reaction(
        self, portal_id: str, target_message_id: str, emoji: str
    ) -> Optional[str]:
        return await self.outbound.remove_reaction(portal_id, target_message_id, emoji)

    async def fetch_messages(
        self,
        portal_id: str,
        count: int,
        anchor_message_id: Optional[str] = None,
    ) -> FetchMessagesResponse:
        return await fetch_messages(self.session, portal_id, count, anchor_message_id)

    async def get_chat_info(self, portal_key: PortalKey) -> ChatInfo:
        return await get_chat_info(self.session, portal_key)

    async def get_user_info(self, user_id: str) -> UserInfo:
        return await get_user_info(self.session, user_id)

    async def sync_chats(self) -> int:
        return await sync_chats(self.session)

    async def _ensure_managed_process(self) -> None:
        process = self._process
        if process is None:
            metadata = self.session.metadata
            port = urlsplit(metadata.ws_url).port if metadata.ws_url else None
            process = ManagedSimplexProcess(
                binary=self.session.config.simplex_binary,
                db_path=metadata.db_path,
                port=port,
                logger=self._logger,
                spawner=self._spawner,
            )
            self._process = process
        if process.is_running:
            return
        await process.start()
        # the connection loop dials the new port
        if self.session.metadata.ws_url != process.ws_url:
            self.session.metadata.ws_url = process.ws_url
            await self.session.save_metadata()
        log_event(
            self._logger,
            logging.INFO,
            "simplex.managed.attached",
            login_id=self.login_id,
            ws_url=process.ws_url,
        )
