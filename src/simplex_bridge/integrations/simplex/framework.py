"""Contract between the SimpleX core and the bridging framework that hosts it.

The framework owns rooms, ghosts, persistence and delivery. The core hands it
remote events carrying explicit async callbacks (``convert``, ``get_chat_info``)
which the framework invokes on its own schedule.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from ...core.coercion import coerce_str


class BridgeStateEvent(str, enum.Enum):
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    TRANSIENT_DISCONNECT = "TRANSIENT_DISCONNECT"
    BAD_CREDENTIALS = "BAD_CREDENTIALS"


class RoomType(str, enum.Enum):
    DM = "dm"
    DEFAULT = "default"


class MessageType(str, enum.Enum):
    TEXT = "m.text"
    NOTICE = "m.notice"
    EMOTE = "m.emote"
    IMAGE = "m.image"
    VIDEO = "m.video"
    AUDIO = "m.audio"
    FILE = "m.file"


MEDIA_MESSAGE_TYPES = frozenset(
    {MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.FILE}
)


@dataclass(frozen=True)
class BridgeState:
    state_event: BridgeStateEvent
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class PortalKey:
    portal_id: str
    receiver: str


@dataclass(frozen=True)
class EventSender:
    sender: str
    is_from_me: bool = False


@dataclass(frozen=True)
class ChatMember:
    sender: EventSender
    membership: str = "join"
    power_level: Optional[int] = None


@dataclass(frozen=True)
class ChatMemberList:
    is_full: bool
    members: dict[str, ChatMember] = field(default_factory=dict)
    other_user_id: Optional[str] = None


@dataclass(frozen=True)
class ChatInfo:
    name: str
    topic: str = ""
    members: Optional[ChatMemberList] = None
    room_type: RoomType = RoomType.DEFAULT

    def without_members(self) -> "ChatInfo":
        return replace(self, members=None)


@dataclass(frozen=True)
class Avatar:
    avatar_id: str
    get: Callable[[], Awaitable[bytes]]


@dataclass(frozen=True)
class UserInfo:
    name: Optional[str] = None
    is_bot: Optional[bool] = None
    avatar: Optional[Avatar] = None


@dataclass
class MessagePart:
    """One converted message part; mutable so media upload can rewrite it."""

    part_id: str
    msg_type: MessageType
    body: str
    formatted_body: Optional[str] = None
    file_name: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    url: Optional[str] = None
    local_path: Optional[str] = None


@dataclass
class ConvertedMessage:
    parts: list[MessagePart]
    reply_to: Optional[str] = None


@dataclass(frozen=True)
class ExistingPart:
    """A part of a message the framework already stored."""

    message_id: str
    part_id: str


@dataclass(frozen=True)
class EditPart:
    existing: ExistingPart
    part: MessagePart


@dataclass(frozen=True)
class ConvertedEdit:
    modified_parts: tuple[EditPart, ...] = ()


@dataclass(frozen=True)
class MediaRef:
    url: str
    mime_type: Optional[str] = None
    encrypted_file: Optional[dict[str, Any]] = None


GetChatInfoFunc = Callable[[PortalKey], Awaitable[ChatInfo]]
ConvertMessageFunc = Callable[[PortalKey], Awaitable[ConvertedMessage]]
ConvertEditFunc = Callable[[PortalKey, Sequence[ExistingPart]], Awaitable[ConvertedEdit]]


@dataclass(frozen=True)
class RemoteMessage:
    portal_key: PortalKey
    sender: EventSender
    message_id: str
    timestamp: datetime
    convert: ConvertMessageFunc
    transaction_id: Optional[str] = None
    create_portal: bool = True


@dataclass(frozen=True)
class RemoteEdit:
    portal_key: PortalKey
    sender: EventSender
    target_message_id: str
    timestamp: datetime
    convert: ConvertEditFunc


@dataclass(frozen=True)
class RemoteMessageRemove:
    portal_key: PortalKey
    sender: EventSender
    target_message_id: str
    timestamp: datetime


@dataclass(frozen=True)
class RemoteReaction:
    portal_key: PortalKey
    sender: EventSender
    target_message_id: str
    emoji: str
    timestamp: datetime
    removed: bool = False


@dataclass(frozen=True)
class ChatResync:
    portal_key: PortalKey
    get_chat_info: GetChatInfoFunc
    create_portal: bool = False
    with_members: bool = True


RemoteEvent = Union[
    RemoteMessage, RemoteEdit, RemoteMessageRemove, RemoteReaction, ChatResync
]


@dataclass
class LoginMetadata:
    ws_url: str = ""
    db_path: str = ""
    managed: bool = False
    chats_synced: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.ws_url:
            payload["ws_url"] = self.ws_url
        if self.db_path:
            payload["db_path"] = self.db_path
        if self.managed:
            payload["managed"] = True
        if self.chats_synced:
            payload["chats_synced"] = True
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "LoginMetadata":
        if not isinstance(data, dict):
            return cls()
        return cls(
            ws_url=coerce_str(data.get("ws_url")),
            db_path=coerce_str(data.get("db_path")),
            managed=bool(data.get("managed", False)),
            chats_synced=bool(data.get("chats_synced", False)),
        )


@runtime_checkable
class BridgeFramework(Protocol):
    """What the core needs from its host."""

    def queue_remote_event(self, login_id: str, event: RemoteEvent) -> None: ...

    async def send_bridge_state(self, login_id: str, state: BridgeState) -> None: ...

    async def upload_media(
        self, portal_key: PortalKey, data: bytes, file_name: str, mime_type: str
    ) -> MediaRef: ...

    async def download_media(self, media: MediaRef) -> bytes: ...

    async def save_login_metadata(
        self, login_id: str, metadata: LoginMetadata
    ) -> None: ...

    async def update_ghost_info(self, user_id: str, info: UserInfo) -> None: ...
