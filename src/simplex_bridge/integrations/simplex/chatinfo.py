from __future__ import annotations

import base64
import binascii
from typing import Optional, Sequence

from .constants import (
    ACTIVE_MEMBER_STATUSES,
    DIRECT_CHAT_TOPIC,
    ELEVATED_MEMBER_ROLES,
    ELEVATED_POWER_LEVEL,
)
from .errors import SimplexError
from .framework import (
    Avatar,
    ChatInfo,
    ChatMember,
    ChatMemberList,
    EventSender,
    PortalKey,
    RoomType,
    UserInfo,
)
from .ids import make_member_user_id, make_user_id, parse_portal_id, parse_user_id
from .session import SimplexSession
from .types import Contact, GroupInfo, GroupMember


class ChatNotFoundError(SimplexError):
    """The engine no longer lists the contact or group behind a portal."""


def decode_data_uri(data_uri: str) -> bytes:
    if not data_uri.startswith("data:"):
        raise ValueError("not a data URI")
    _, sep, encoded = data_uri.partition(",")
    if not sep:
        raise ValueError("malformed data URI: no comma")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        return base64.urlsafe_b64decode(encoded)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"base64 decode: {exc}") from exc


def member_user_id(member: GroupMember) -> str:
    if member.contact_id is not None:
        return make_user_id(member.contact_id)
    return make_member_user_id(member.member_id)


def contact_to_chat_info(contact: Contact, self_user_id: str) -> ChatInfo:
    other_user_id = make_user_id(contact.contact_id)
    members = ChatMemberList(
        is_full=True,
        members={
            other_user_id: ChatMember(sender=EventSender(sender=other_user_id)),
            self_user_id: ChatMember(
                sender=EventSender(sender=self_user_id, is_from_me=True)
            ),
        },
        other_user_id=other_user_id,
    )
    return ChatInfo(
        name=contact.name,
        topic=DIRECT_CHAT_TOPIC,
        members=members,
        room_type=RoomType.DM,
    )


def group_to_chat_info(
    group: GroupInfo, members: Sequence[GroupMember], self_user_id: str
) -> ChatInfo:
    member_map: dict[str, ChatMember] = {}
    for member in members:
        if member.member_status not in ACTIVE_MEMBER_STATUSES:
            continue
        user_id = member_user_id(member)
        power_level = (
            ELEVATED_POWER_LEVEL if member.member_role in ELEVATED_MEMBER_ROLES else 0
        )
        member_map[user_id] = ChatMember(
            sender=EventSender(sender=user_id), power_level=power_level
        )
    # The local user is never in the member list but must be in the room.
    member_map[self_user_id] = ChatMember(
        sender=EventSender(sender=self_user_id, is_from_me=True),
        power_level=ELEVATED_POWER_LEVEL,
    )
    return ChatInfo(
        name=group.name,
        topic=group.group_profile.description or "",
        members=ChatMemberList(is_full=True, members=member_map),
        room_type=RoomType.DEFAULT,
    )


async def get_chat_info(session: SimplexSession, portal_key: PortalKey) -> ChatInfo:
    chat = parse_portal_id(portal_key.portal_id)
    api = session.require_api()
    if chat.is_group:
        groups = await api.list_groups(session.user_id)
        group = next((g for g in groups if g.group_id == chat.chat_id), None)
        if group is None:
            raise ChatNotFoundError(f"group {chat.chat_id} not found")
        members = await api.list_members(chat.chat_id)
        return group_to_chat_info(group, members, session.self_user_id)
    contacts = await api.list_contacts(session.user_id)
    contact = next((c for c in contacts if c.contact_id == chat.chat_id), None)
    if contact is None:
        raise ChatNotFoundError(f"contact {chat.chat_id} not found")
    return contact_to_chat_info(contact, session.self_user_id)


def contact_to_user_info(session: SimplexSession, contact: Contact) -> UserInfo:
    name = session.config.format_display_name(
        display_name=contact.name, contact_id=str(contact.contact_id)
    )
    avatar: Optional[Avatar] = None
    image = contact.profile.image
    if image:

        async def _get_avatar() -> bytes:
            return decode_data_uri(image)

        avatar = Avatar(avatar_id=f"contact:{contact.contact_id}", get=_get_avatar)
    return UserInfo(name=name, is_bot=False, avatar=avatar)


async def get_user_info(session: SimplexSession, user_id: str) -> UserInfo:
    ref = parse_user_id(user_id)
    if ref.is_member:
        return UserInfo()
    api = session.require_api()
    for contact in await api.list_contacts(session.user_id):
        if contact.contact_id == ref.contact_id:
            return contact_to_user_info(session, contact)
    return UserInfo()
