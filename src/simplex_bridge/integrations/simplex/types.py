"""Typed views of the JSON objects exchanged with the chat engine.

Decoders are strict about identifiers (a missing ``itemId`` or ``contactId`` is a
protocol error) and lenient about display fields, which the engine omits freely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ...core.coercion import coerce_dict, coerce_int, coerce_list, coerce_str
from .constants import (
    CHAT_TYPE_DIRECT,
    CHAT_TYPE_GROUP,
    DIRECTION_DIRECT_RCV,
    DIRECTION_GROUP_RCV,
    SENT_DIRECTIONS,
)
from .errors import SimplexProtocolError
from .ids import ChatRef


def _require_id(data: dict[str, Any], key: str, *, context: str) -> int:
    value = coerce_int(data.get(key))
    if value is None:
        raise SimplexProtocolError(f"{context} missing numeric {key}")
    return value


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _require_mapping(value: Any, *, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SimplexProtocolError(f"{context} must be a JSON object")
    return value


@dataclass(frozen=True)
class Profile:
    display_name: str = ""
    full_name: str = ""
    image: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        payload = coerce_dict(data)
        return cls(
            display_name=coerce_str(payload.get("displayName")),
            full_name=coerce_str(payload.get("fullName")),
            image=_optional_str(payload.get("image")),
        )


@dataclass(frozen=True)
class GroupProfile:
    display_name: str = ""
    full_name: str = ""
    image: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GroupProfile":
        payload = coerce_dict(data)
        return cls(
            display_name=coerce_str(payload.get("displayName")),
            full_name=coerce_str(payload.get("fullName")),
            image=_optional_str(payload.get("image")),
            description=_optional_str(payload.get("groupDescription")),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "displayName": self.display_name,
            "fullName": self.full_name,
        }
        if self.image is not None:
            payload["image"] = self.image
        if self.description is not None:
            payload["groupDescription"] = self.description
        return payload


@dataclass(frozen=True)
class User:
    user_id: int
    profile: Profile = field(default_factory=Profile)

    @classmethod
    def from_dict(cls, data: Any) -> "User":
        payload = _require_mapping(data, context="user")
        return cls(
            user_id=_require_id(payload, "userId", context="user"),
            profile=Profile.from_dict(payload.get("profile")),
        )


@dataclass(frozen=True)
class Contact:
    contact_id: int
    local_display_name: str = ""
    profile: Profile = field(default_factory=Profile)
    contact_used: bool = False
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Contact":
        payload = _require_mapping(data, context="contact")
        return cls(
            contact_id=_require_id(payload, "contactId", context="contact"),
            local_display_name=coerce_str(payload.get("localDisplayName")),
            profile=Profile.from_dict(payload.get("profile")),
            contact_used=bool(payload.get("contactUsed", False)),
            created_at=coerce_str(payload.get("createdAt")),
        )

    @property
    def name(self) -> str:
        return self.profile.display_name or self.local_display_name


@dataclass(frozen=True)
class GroupMember:
    group_member_id: int
    member_id: str
    group_id: Optional[int] = None
    member_role: str = "member"
    member_category: str = ""
    member_status: str = ""
    local_display_name: str = ""
    profile: Profile = field(default_factory=Profile)
    contact_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GroupMember":
        payload = _require_mapping(data, context="group member")
        member_id = payload.get("memberId")
        if not isinstance(member_id, str) or not member_id:
            raise SimplexProtocolError("group member missing memberId")
        return cls(
            group_member_id=_require_id(
                payload, "groupMemberId", context="group member"
            ),
            member_id=member_id,
            group_id=coerce_int(payload.get("groupId")),
            member_role=coerce_str(payload.get("memberRole"), "member"),
            member_category=coerce_str(payload.get("memberCategory")),
            member_status=coerce_str(payload.get("memberStatus")),
            local_display_name=coerce_str(payload.get("localDisplayName")),
            profile=Profile.from_dict(payload.get("profile")),
            contact_id=coerce_int(payload.get("contactId")),
        )

    @property
    def name(self) -> str:
        return self.profile.display_name or self.local_display_name


@dataclass(frozen=True)
class GroupInfo:
    group_id: int
    local_display_name: str = ""
    group_profile: GroupProfile = field(default_factory=GroupProfile)
    membership: Optional[GroupMember] = None
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "GroupInfo":
        payload = _require_mapping(data, context="group info")
        membership_raw = payload.get("membership")
        return cls(
            group_id=_require_id(payload, "groupId", context="group info"),
            local_display_name=coerce_str(payload.get("localDisplayName")),
            group_profile=GroupProfile.from_dict(payload.get("groupProfile")),
            membership=(
                GroupMember.from_dict(membership_raw)
                if isinstance(membership_raw, dict)
                else None
            ),
            created_at=coerce_str(payload.get("createdAt")),
        )

    @property
    def name(self) -> str:
        return self.group_profile.display_name or self.local_display_name


@dataclass(frozen=True)
class ChatDir:
    type: str
    group_member: Optional[GroupMember] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ChatDir":
        payload = _require_mapping(data, context="chatDir")
        dir_type = payload.get("type")
        if not isinstance(dir_type, str) or not dir_type:
            raise SimplexProtocolError("chatDir missing type")
        member_raw = payload.get("groupMember")
        return cls(
            type=dir_type,
            group_member=(
                GroupMember.from_dict(member_raw) if isinstance(member_raw, dict) else None
            ),
        )

    @property
    def is_sent(self) -> bool:
        return self.type in SENT_DIRECTIONS

    @property
    def is_direct_received(self) -> bool:
        return self.type == DIRECTION_DIRECT_RCV

    @property
    def is_group_received(self) -> bool:
        return self.type == DIRECTION_GROUP_RCV


@dataclass(frozen=True)
class FormattedText:
    text: str
    format_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "FormattedText":
        payload = coerce_dict(data)
        fmt = payload.get("format")
        format_type = None
        if isinstance(fmt, dict) and isinstance(fmt.get("type"), str):
            format_type = fmt["type"]
        return cls(text=coerce_str(payload.get("text")), format_type=format_type)


@dataclass(frozen=True)
class LinkPreview:
    uri: str
    title: str
    description: str = ""
    image: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Optional["LinkPreview"]:
        if not isinstance(data, dict):
            return None
        uri = coerce_str(data.get("uri"))
        if not uri:
            return None
        return cls(
            uri=uri,
            title=coerce_str(data.get("title")),
            description=coerce_str(data.get("description")),
            image=coerce_str(data.get("image")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "title": self.title,
            "description": self.description,
            "image": self.image,
        }


@dataclass(frozen=True)
class MsgContent:
    """Message content as the engine models it.

    ``image`` is a base64 data-URI thumbnail and is mandatory (possibly empty) for
    image and video content; ``duration`` (seconds) is mandatory for video and
    voice. File paths never appear here, they travel in ``ComposedMessage``.
    """

    type: str
    text: str = ""
    image: Optional[str] = None
    duration: Optional[int] = None
    preview: Optional[LinkPreview] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["MsgContent"]:
        if not isinstance(data, dict):
            return None
        content_type = data.get("type")
        if not isinstance(content_type, str):
            return None
        return cls(
            type=content_type,
            text=coerce_str(data.get("text")),
            image=_optional_str(data.get("image")),
            duration=coerce_int(data.get("duration")),
            preview=LinkPreview.from_dict(data.get("preview")),
        )

    @classmethod
    def text_content(cls, text: str) -> "MsgContent":
        return cls(type="text", text=text)

    @classmethod
    def file_content(cls, file_name: str) -> "MsgContent":
        return cls(type="file", text=file_name)

    @classmethod
    def image_content(cls, text: str, thumbnail: str = "") -> "MsgContent":
        return cls(type="image", text=text, image=thumbnail)

    @classmethod
    def video_content(
        cls, text: str, thumbnail: str = "", duration: int = 0
    ) -> "MsgContent":
        return cls(type="video", text=text, image=thumbnail, duration=duration)

    @classmethod
    def voice_content(cls, text: str, duration: int = 0) -> "MsgContent":
        return cls(type="voice", text=text, duration=duration)

    @classmethod
    def link_content(cls, text: str, preview: LinkPreview) -> "MsgContent":
        return cls(type="link", text=text, preview=preview)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "text": self.text}
        if self.type in ("image", "video"):
            payload["image"] = self.image or ""
        elif self.image is not None:
            payload["image"] = self.image
        if self.type in ("video", "voice"):
            payload["duration"] = self.duration or 0
        elif self.duration is not None:
            payload["duration"] = self.duration
        if self.preview is not None:
            payload["preview"] = self.preview.to_dict()
        return payload


@dataclass(frozen=True)
class ChatItemFile:
    file_id: int
    file_name: str = ""
    file_size: int = 0
    file_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ChatItemFile":
        payload = _require_mapping(data, context="file")
        file_path = payload.get("filePath")
        return cls(
            file_id=_require_id(payload, "fileId", context="file"),
            file_name=coerce_str(payload.get("fileName")),
            file_size=coerce_int(payload.get("fileSize"), 0) or 0,
            file_path=file_path if isinstance(file_path, str) and file_path else None,
        )

    @property
    def is_materialized(self) -> bool:
        return self.file_path is not None


@dataclass(frozen=True)
class ReactionCount:
    reaction_type: str
    emoji: str
    count: int

    @classmethod
    def from_dict(cls, data: Any) -> "ReactionCount":
        payload = coerce_dict(data)
        reaction = coerce_dict(payload.get("reaction"))
        return cls(
            reaction_type=coerce_str(reaction.get("type")),
            emoji=coerce_str(reaction.get("emoji")),
            count=coerce_int(payload.get("reactionCount"), 0) or 0,
        )


@dataclass(frozen=True)
class ChatItemMeta:
    item_id: int
    item_sent: bool = False
    created_at: str = ""
    item_text: str = ""
    item_deleted: bool = False
    item_edited: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "ChatItemMeta":
        payload = _require_mapping(data, context="chat item meta")
        return cls(
            item_id=_require_id(payload, "itemId", context="chat item meta"),
            item_sent=bool(payload.get("itemSent", False)),
            created_at=coerce_str(payload.get("createdAt")),
            item_text=coerce_str(payload.get("itemText")),
            item_deleted=payload.get("itemDeleted") is not None,
            item_edited=bool(payload.get("itemEdited", False)),
        )


@dataclass(frozen=True)
class ChatItem:
    chat_dir: ChatDir
    meta: ChatItemMeta
    content_type: str = ""
    msg_content: Optional[MsgContent] = None
    formatted_text: tuple[FormattedText, ...] = ()
    file: Optional[ChatItemFile] = None
    reactions: tuple[ReactionCount, ...] = ()
    quoted_item_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ChatItem":
        payload = _require_mapping(data, context="chat item")
        content = coerce_dict(payload.get("content"))
        file_raw = payload.get("file")
        quoted = coerce_dict(payload.get("quotedItem"))
        return cls(
            chat_dir=ChatDir.from_dict(payload.get("chatDir")),
            meta=ChatItemMeta.from_dict(payload.get("meta")),
            content_type=coerce_str(content.get("type")),
            msg_content=MsgContent.from_dict(content.get("msgContent")),
            formatted_text=tuple(
                FormattedText.from_dict(span)
                for span in coerce_list(payload.get("formattedText"))
            ),
            file=ChatItemFile.from_dict(file_raw) if isinstance(file_raw, dict) else None,
            reactions=tuple(
                ReactionCount.from_dict(entry)
                for entry in coerce_list(payload.get("reactions"))
            ),
            quoted_item_id=coerce_int(quoted.get("itemId")),
        )

    @property
    def item_id(self) -> int:
        return self.meta.item_id

    @property
    def awaiting_file(self) -> bool:
        return self.file is not None and not self.file.is_materialized


@dataclass(frozen=True)
class ChatInfo:
    type: str
    contact: Optional[Contact] = None
    group_info: Optional[GroupInfo] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ChatInfo":
        payload = _require_mapping(data, context="chatInfo")
        chat_type = payload.get("type")
        if not isinstance(chat_type, str) or not chat_type:
            raise SimplexProtocolError("chatInfo missing type")
        contact_raw = payload.get("contact")
        group_raw = payload.get("groupInfo")
        return cls(
            type=chat_type,
            contact=Contact.from_dict(contact_raw) if isinstance(contact_raw, dict) else None,
            group_info=(
                GroupInfo.from_dict(group_raw) if isinstance(group_raw, dict) else None
            ),
        )

    def chat_ref(self) -> Optional[ChatRef]:
        if self.type == CHAT_TYPE_DIRECT and self.contact is not None:
            return ChatRef(CHAT_TYPE_DIRECT, self.contact.contact_id)
        if self.type == CHAT_TYPE_GROUP and self.group_info is not None:
            return ChatRef(CHAT_TYPE_GROUP, self.group_info.group_id)
        return None


@dataclass(frozen=True)
class AChatItem:
    chat_info: ChatInfo
    chat_item: ChatItem

    @classmethod
    def from_dict(cls, data: Any) -> "AChatItem":
        payload = _require_mapping(data, context="chat item envelope")
        return cls(
            chat_info=ChatInfo.from_dict(payload.get("chatInfo")),
            chat_item=ChatItem.from_dict(payload.get("chatItem")),
        )


@dataclass(frozen=True)
class AChat:
    chat_info: ChatInfo
    chat_items: tuple[ChatItem, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "AChat":
        payload = _require_mapping(data, context="chat")
        return cls(
            chat_info=ChatInfo.from_dict(payload.get("chatInfo")),
            chat_items=tuple(
                ChatItem.from_dict(item) for item in coerce_list(payload.get("chatItems"))
            ),
        )


@dataclass(frozen=True)
class ComposedMessage:
    msg_content: MsgContent
    file_path: Optional[str] = None
    quoted_item_id: Optional[int] = None
    mentions: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.file_path is not None:
            payload["fileSource"] = {"filePath": self.file_path}
        if self.quoted_item_id is not None:
            payload["quotedItemId"] = self.quoted_item_id
        payload["mentions"] = dict(self.mentions)
        payload["msgContent"] = self.msg_content.to_dict()
        return payload


@dataclass(frozen=True)
class ContactRequest:
    contact_request_id: int
    local_display_name: str = ""
    profile: Profile = field(default_factory=Profile)

    @classmethod
    def from_dict(cls, data: Any) -> "ContactRequest":
        payload = _require_mapping(data, context="contact request")
        return cls(
            contact_request_id=_require_id(
                payload, "contactRequestId", context="contact request"
            ),
            local_display_name=coerce_str(payload.get("localDisplayName")),
            profile=Profile.from_dict(payload.get("profile")),
        )


@dataclass(frozen=True)
class RcvFileTransfer:
    file_id: int
    file_name: str = ""
    file_size: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "RcvFileTransfer":
        payload = _require_mapping(data, context="rcvFileTransfer")
        invitation = coerce_dict(payload.get("fileInvitation"))
        return cls(
            file_id=_require_id(payload, "fileId", context="rcvFileTransfer"),
            file_name=coerce_str(
                payload.get("fileName") or invitation.get("fileName")
            ),
            file_size=coerce_int(
                payload.get("fileSize", invitation.get("fileSize")), 0
            )
            or 0,
        )


@dataclass(frozen=True)
class ChatReaction:
    """A single reaction as reported in ``chatItemReaction`` events."""

    emoji: str
    reaction_type: str = "emoji"
    chat_dir: Optional[ChatDir] = None
    chat_item: Optional[ChatItem] = None
    sent_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "ChatReaction":
        payload = _require_mapping(data, context="chatReaction")
        reaction = coerce_dict(payload.get("reaction"))
        chat_dir_raw = payload.get("chatDir")
        chat_item_raw = payload.get("chatItem")
        return cls(
            emoji=coerce_str(reaction.get("emoji")),
            reaction_type=coerce_str(reaction.get("type"), "emoji"),
            chat_dir=(
                ChatDir.from_dict(chat_dir_raw) if isinstance(chat_dir_raw, dict) else None
            ),
            chat_item=(
                ChatItem.from_dict(chat_item_raw)
                if isinstance(chat_item_raw, dict)
                else None
            ),
            sent_at=coerce_str(payload.get("sentAt") or payload.get("reactionAt")),
        )


@dataclass(frozen=True)
class ACIReaction:
    chat_info: ChatInfo
    chat_reaction: ChatReaction
    from_member: Optional[GroupMember] = None
    from_contact: Optional[Contact] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ACIReaction":
        payload = _require_mapping(data, context="reaction")
        member_raw = payload.get("fromMember")
        contact_raw = payload.get("fromContact")
        return cls(
            chat_info=ChatInfo.from_dict(payload.get("chatInfo")),
            chat_reaction=ChatReaction.from_dict(payload.get("chatReaction")),
            from_member=(
                GroupMember.from_dict(member_raw) if isinstance(member_raw, dict) else None
            ),
            from_contact=(
                Contact.from_dict(contact_raw) if isinstance(contact_raw, dict) else None
            ),
        )
