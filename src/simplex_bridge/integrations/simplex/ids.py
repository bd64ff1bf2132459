"""Reversible keys for remote identifiers.

Portal keys are ``d:<contactId>`` for direct chats and ``g:<groupId>`` for
groups. Ghost user keys are ``<contactId>`` for contacts and ``m:<memberId>``
for group members without a contact. Message keys are ``<itemId>`` and login
keys are ``<userId>``. Parsing rejects anything that would not round-trip.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .constants import CHAT_REF_PREFIX, CHAT_TYPE_DIRECT, CHAT_TYPE_GROUP
from .errors import InvalidChatIdentifier

_DIRECT_PREFIX = "d:"
_GROUP_PREFIX = "g:"
_MEMBER_PREFIX = "m:"
_CANONICAL_INT_RE = re.compile(r"^(?:0|-?[1-9][0-9]*)$")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class ChatRef:
    chat_type: str
    chat_id: int

    def __post_init__(self) -> None:
        if self.chat_type not in CHAT_REF_PREFIX:
            raise InvalidChatIdentifier(f"unknown chat type {self.chat_type!r}")

    @property
    def is_group(self) -> bool:
        return self.chat_type == CHAT_TYPE_GROUP

    def command_ref(self) -> str:
        """Render as the engine's positional chat reference (``@12`` / ``#3``)."""
        return f"{CHAT_REF_PREFIX[self.chat_type]}{self.chat_id}"

    def portal_id(self) -> str:
        if self.is_group:
            return make_group_portal_id(self.chat_id)
        return make_dm_portal_id(self.chat_id)


@dataclass(frozen=True)
class UserRef:
    contact_id: Optional[int] = None
    member_id: Optional[str] = None

    @property
    def is_member(self) -> bool:
        return self.member_id is not None


def _parse_int(value: str, *, label: str, key: str) -> int:
    if not _CANONICAL_INT_RE.match(value):
        raise InvalidChatIdentifier(f"invalid {label} {key!r}")
    parsed = int(value)
    if parsed < _INT64_MIN or parsed > _INT64_MAX:
        raise InvalidChatIdentifier(f"{label} out of range: {key!r}")
    return parsed


def _require_int(value: int, *, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidChatIdentifier(f"{label} must be an integer, got {value!r}")
    if value < _INT64_MIN or value > _INT64_MAX:
        raise InvalidChatIdentifier(f"{label} out of range: {value}")
    return value


def make_dm_portal_id(contact_id: int) -> str:
    return f"{_DIRECT_PREFIX}{_require_int(contact_id, label='contact id')}"


def make_group_portal_id(group_id: int) -> str:
    return f"{_GROUP_PREFIX}{_require_int(group_id, label='group id')}"


def parse_portal_id(portal_id: str) -> ChatRef:
    if not isinstance(portal_id, str):
        raise InvalidChatIdentifier(f"invalid portal id {portal_id!r}")
    if portal_id.startswith(_GROUP_PREFIX):
        group_id = _parse_int(
            portal_id[len(_GROUP_PREFIX) :], label="group portal id", key=portal_id
        )
        return ChatRef(CHAT_TYPE_GROUP, group_id)
    if portal_id.startswith(_DIRECT_PREFIX):
        contact_id = _parse_int(
            portal_id[len(_DIRECT_PREFIX) :], label="DM portal id", key=portal_id
        )
        return ChatRef(CHAT_TYPE_DIRECT, contact_id)
    raise InvalidChatIdentifier(f"unknown portal id format: {portal_id!r}")


def make_user_id(contact_id: int) -> str:
    return str(_require_int(contact_id, label="contact id"))


def make_member_user_id(member_id: str) -> str:
    if not isinstance(member_id, str) or not member_id:
        raise InvalidChatIdentifier("member id is required")
    return f"{_MEMBER_PREFIX}{member_id}"


def parse_user_id(user_id: str) -> UserRef:
    if not isinstance(user_id, str) or not user_id:
        raise InvalidChatIdentifier(f"invalid user id {user_id!r}")
    if user_id.startswith(_MEMBER_PREFIX):
        member_id = user_id[len(_MEMBER_PREFIX) :]
        if not member_id:
            raise InvalidChatIdentifier(f"invalid member user id {user_id!r}")
        return UserRef(member_id=member_id)
    return UserRef(contact_id=_parse_int(user_id, label="user id", key=user_id))


def make_message_id(item_id: int) -> str:
    return str(_require_int(item_id, label="chat item id"))


def parse_message_id(message_id: str) -> int:
    if not isinstance(message_id, str):
        raise InvalidChatIdentifier(f"invalid message id {message_id!r}")
    return _parse_int(message_id, label="message id", key=message_id)


def make_user_login_id(user_id: int) -> str:
    return str(_require_int(user_id, label="user id"))


def parse_user_login_id(login_id: str) -> int:
    if not isinstance(login_id, str):
        raise InvalidChatIdentifier(f"invalid user login id {login_id!r}")
    return _parse_int(login_id, label="user login id", key=login_id)


def chat_ref_for(chat_type: str, chat_id: int) -> ChatRef:
    if chat_type not in (CHAT_TYPE_DIRECT, CHAT_TYPE_GROUP):
        raise InvalidChatIdentifier(f"unknown chat type {chat_type!r}")
    return ChatRef(chat_type, _require_int(chat_id, label="chat id"))
