"""Builders for the engine's positional text commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .ids import ChatRef
from .types import ComposedMessage, GroupProfile, MsgContent

PAGINATION_LAST = "last"
PAGINATION_BEFORE = "before"
PAGINATION_AFTER = "after"
PAGINATION_AROUND = "around"
PAGINATION_INITIAL = "initial"

DELETE_MODE_BROADCAST = "broadcast"
DELETE_MODE_INTERNAL = "internal"


@dataclass(frozen=True)
class ChatPagination:
    type: str = PAGINATION_LAST
    count: int = 50
    item_id: Optional[int] = None

    def render(self) -> str:
        if self.type == PAGINATION_INITIAL:
            return f"initial={self.count}"
        if self.type in (PAGINATION_BEFORE, PAGINATION_AFTER, PAGINATION_AROUND):
            if self.item_id is None:
                raise ValueError(f"{self.type} pagination requires an item id")
            return f"{self.type}={self.item_id} count={self.count}"
        return f"count={self.count}"


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def get_active_user() -> str:
    return "/u"


def list_contacts(user_id: int) -> str:
    return f"/_contacts {user_id}"


def list_groups(user_id: int) -> str:
    # The engine's parser takes the id with no separating space here.
    return f"/_groups{user_id}"


def list_members(group_id: int) -> str:
    return f"/_members #{group_id}"


def get_chat(chat: ChatRef, pagination: ChatPagination) -> str:
    return f"/_get chat {chat.command_ref()} {pagination.render()}"


def send_messages(chat: ChatRef, messages: Sequence[ComposedMessage]) -> str:
    payload = _json([message.to_dict() for message in messages])
    return f"/_send {chat.command_ref()} live=off json {payload}"


def update_chat_item(chat: ChatRef, item_id: int, content: MsgContent) -> str:
    payload = _json({"msgContent": content.to_dict(), "mentions": {}})
    return f"/_update item {chat.command_ref()} {item_id} live=off json{payload}"


def delete_chat_item(
    chat: ChatRef, item_ids: Sequence[int], mode: str = DELETE_MODE_BROADCAST
) -> str:
    if mode not in (DELETE_MODE_BROADCAST, DELETE_MODE_INTERNAL):
        mode = DELETE_MODE_BROADCAST
    ids = _json([int(item_id) for item_id in item_ids])
    return f"/_delete item {chat.command_ref()} {ids} {_json({'type': mode})}"


def react_to_chat_item(chat: ChatRef, item_id: int, emoji: str, *, add: bool) -> str:
    toggle = "on" if add else "off"
    reaction = _json({"type": "emoji", "emoji": emoji})
    return f"/_reaction {chat.command_ref()} {item_id} {toggle} {reaction}"


def accept_contact(contact_request_id: int) -> str:
    return f"/_accept incognito=off {contact_request_id}"


def receive_file(file_id: int) -> str:
    return f"/freceive {file_id} approved_relays=on"


def create_address(user_id: int) -> str:
    return f"/_address {user_id}"


def set_address_settings(
    user_id: int, *, auto_accept: bool, auto_reply: Optional[MsgContent] = None
) -> str:
    settings: dict[str, Any] = {"businessAddress": False}
    if auto_accept:
        settings["autoAccept"] = {"acceptIncognito": False}
        if auto_reply is not None:
            settings["autoReply"] = auto_reply.to_dict()
    return f"/_address_settings {user_id} {_json(settings)}"


def join_group(group_id: int) -> str:
    return f"/_join #{group_id}"


def update_group_profile(group_id: int, profile: GroupProfile) -> str:
    return f"/_group_profile #{group_id} {_json(profile.to_dict())}"
