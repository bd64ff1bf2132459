from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ...core.logging_utils import log_event
from .api import SimplexApi
from .config import SimplexBridgeConfig
from .echo import PendingEchoRegistry
from .errors import NotLoggedInError
from .framework import BridgeFramework, EventSender, LoginMetadata, PortalKey
from .ids import make_user_id, parse_user_login_id


@dataclass
class SimplexSession:
    """Per-login state shared by the ingestion, outbound and sync paths.

    ``api`` is swapped on every (re)connect and cleared on disconnect; callers
    that need a live connection go through ``require_api``.
    """

    config: SimplexBridgeConfig
    framework: BridgeFramework
    login_id: str
    metadata: LoginMetadata = field(default_factory=LoginMetadata)
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("simplex_bridge.simplex")
    )
    echoes: PendingEchoRegistry = field(default_factory=PendingEchoRegistry)
    api: Optional[SimplexApi] = None

    @property
    def user_id(self) -> int:
        return parse_user_login_id(self.login_id)

    @property
    def self_user_id(self) -> str:
        return make_user_id(self.user_id)

    @property
    def is_logged_in(self) -> bool:
        return self.api is not None

    def require_api(self) -> SimplexApi:
        api = self.api
        if api is None:
            raise NotLoggedInError()
        return api

    def portal_key(self, portal_id: str) -> PortalKey:
        return PortalKey(portal_id=portal_id, receiver=self.login_id)

    def self_sender(self) -> EventSender:
        return EventSender(sender=self.self_user_id, is_from_me=True)

    def is_this_user(self, user_id: str) -> bool:
        return self.is_logged_in and user_id == self.self_user_id

    async def save_metadata(self) -> None:
        try:
            await self.framework.save_login_metadata(self.login_id, self.metadata)
        except Exception as exc:
            log_event(
                self.logger,
                logging.WARNING,
                "simplex.session.metadata_save_failed",
                login_id=self.login_id,
                exc=exc,
            )
