"""SimpleX chat engine integration."""

from .api import SimplexApi
from .backfill import BackfillMessage, FetchMessagesResponse, fetch_messages
from .bridge import SimplexBridge
from .chatinfo import ChatNotFoundError, get_chat_info, get_user_info
from .client import SimplexClient, client_factory_for
from .config import SimplexBridgeConfig, load_simplex_bridge_config
from .connection import SimplexConnection, calculate_reconnect_backoff
from .echo import PendingEchoRegistry
from .errors import (
    InvalidChatIdentifier,
    MediaUnavailableError,
    NotLoggedInError,
    SendFailure,
    SimplexChatError,
    SimplexConfigError,
    SimplexConnectionClosed,
    SimplexConnectionError,
    SimplexError,
    SimplexProtocolError,
    SimplexUnexpectedResponse,
)
from .events import SimplexEvent, decode_event
from .framework import (
    BridgeFramework,
    BridgeState,
    BridgeStateEvent,
    LoginMetadata,
    PortalKey,
    RemoteEvent,
)
from .ids import (
    make_dm_portal_id,
    make_group_portal_id,
    make_member_user_id,
    make_message_id,
    make_user_id,
    make_user_login_id,
    parse_message_id,
    parse_portal_id,
    parse_user_id,
    parse_user_login_id,
)
from .ingest import EventIngestor
from .login import LoginInputError, LoginResult, managed_login, websocket_login
from .managed import ManagedProcessError, ManagedSimplexProcess, find_free_port
from .outbound import (
    OutboundSender,
    OutgoingMessage,
    SendResult,
    normalize_reaction_emoji,
)
from .session import SimplexSession
from .sync import sync_chats

__all__ = [
    "BackfillMessage",
    "BridgeFramework",
    "BridgeState",
    "BridgeStateEvent",
    "ChatNotFoundError",
    "EventIngestor",
    "FetchMessagesResponse",
    "InvalidChatIdentifier",
    "LoginInputError",
    "LoginMetadata",
    "LoginResult",
    "ManagedProcessError",
    "ManagedSimplexProcess",
    "MediaUnavailableError",
    "NotLoggedInError",
    "OutboundSender",
    "OutgoingMessage",
    "PendingEchoRegistry",
    "PortalKey",
    "RemoteEvent",
    "SendFailure",
    "SendResult",
    "SimplexApi",
    "SimplexBridge",
    "SimplexBridgeConfig",
    "SimplexChatError",
    "SimplexClient",
    "SimplexConfigError",
    "SimplexConnection",
    "SimplexConnectionClosed",
    "SimplexConnectionError",
    "SimplexError",
    "SimplexEvent",
    "SimplexProtocolError",
    "SimplexSession",
    "SimplexUnexpectedResponse",
    "calculate_reconnect_backoff",
    "client_factory_for",
    "decode_event",
    "fetch_messages",
    "find_free_port",
    "get_chat_info",
    "get_user_info",
    "load_simplex_bridge_config",
    "make_dm_portal_id",
    "make_group_portal_id",
    "make_member_user_id",
    "make_message_id",
    "make_user_id",
    "make_user_login_id",
    "managed_login",
    "normalize_reaction_emoji",
    "parse_message_id",
    "parse_portal_id",
    "parse_user_id",
    "parse_user_login_id",
    "sync_chats",
    "websocket_login",
]
