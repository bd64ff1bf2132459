"""Typed engine events, decoded by ``type`` tag first and payload second."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from ...core.coercion import coerce_dict, coerce_list
from .errors import SimplexProtocolError
from .protocol import RawEvent
from .types import (
    AChatItem,
    ACIReaction,
    Contact,
    ContactRequest,
    GroupInfo,
    GroupMember,
    RcvFileTransfer,
)


@dataclass(frozen=True)
class NewChatItems:
    items: tuple[AChatItem, ...]


@dataclass(frozen=True)
class ChatItemUpdated:
    item: AChatItem


@dataclass(frozen=True)
class ChatItemDeletion:
    deleted: Optional[AChatItem]
    to_item: Optional[AChatItem] = None


@dataclass(frozen=True)
class ChatItemsDeleted:
    deletions: tuple[ChatItemDeletion, ...]
    by_user: bool = False


@dataclass(frozen=True)
class ChatItemReaction:
    added: bool
    reaction: ACIReaction


@dataclass(frozen=True)
class ContactConnected:
    contact: Contact


@dataclass(frozen=True)
class ContactUpdated:
    to_contact: Contact
    from_contact: Optional[Contact] = None


@dataclass(frozen=True)
class JoinedGroupMember:
    group_info: GroupInfo
    member: Optional[GroupMember] = None


@dataclass(frozen=True)
class MemberLeft:
    """``deletedMember`` and ``leftMember`` both refresh the same group."""

    group_info: GroupInfo
    member: Optional[GroupMember] = None
    removed: bool = False


@dataclass(frozen=True)
class GroupUpdated:
    to_group: GroupInfo


@dataclass(frozen=True)
class RcvFileDescrReady:
    transfer: RcvFileTransfer
    item: Optional[AChatItem] = None


@dataclass(frozen=True)
class RcvFileComplete:
    item: AChatItem


@dataclass(frozen=True)
class ReceivedContactRequest:
    request: ContactRequest


@dataclass(frozen=True)
class ChatErrorEvent:
    error: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnknownEvent:
    type: str


SimplexEvent = Union[
    NewChatItems,
    ChatItemUpdated,
    ChatItemsDeleted,
    ChatItemReaction,
    ContactConnected,
    ContactUpdated,
    JoinedGroupMember,
    MemberLeft,
    GroupUpdated,
    RcvFileDescrReady,
    RcvFileComplete,
    ReceivedContactRequest,
    ChatErrorEvent,
    UnknownEvent,
]


def _optional(decoder: Callable[[Any], Any], value: Any) -> Any:
    return decoder(value) if isinstance(value, dict) else None


def _new_chat_items(payload: dict[str, Any]) -> NewChatItems:
    return NewChatItems(
        items=tuple(
            AChatItem.from_dict(item) for item in coerce_list(payload.get("chatItems"))
        )
    )


def _chat_item_updated(payload: dict[str, Any]) -> ChatItemUpdated:
    return ChatItemUpdated(item=AChatItem.from_dict(payload.get("chatItem")))


def _chat_items_deleted(payload: dict[str, Any]) -> ChatItemsDeleted:
    deletions = []
    for entry in coerce_list(payload.get("chatItemDeletions")):
        entry = coerce_dict(entry)
        deletions.append(
            ChatItemDeletion(
                deleted=_optional(AChatItem.from_dict, entry.get("deletedChatItem")),
                to_item=_optional(AChatItem.from_dict, entry.get("toChatItem")),
            )
        )
    return ChatItemsDeleted(
        deletions=tuple(deletions), by_user=bool(payload.get("byUser", False))
    )


def _chat_item_reaction(payload: dict[str, Any]) -> ChatItemReaction:
    return ChatItemReaction(
        added=bool(payload.get("added", False)),
        reaction=ACIReaction.from_dict(payload.get("reaction")),
    )


def _contact_connected(payload: dict[str, Any]) -> ContactConnected:
    return ContactConnected(contact=Contact.from_dict(payload.get("contact")))


def _contact_updated(payload: dict[str, Any]) -> ContactUpdated:
    return ContactUpdated(
        to_contact=Contact.from_dict(payload.get("toContact")),
        from_contact=_optional(Contact.from_dict, payload.get("fromContact")),
    )


def _joined_group_member(payload: dict[str, Any]) -> JoinedGroupMember:
    return JoinedGroupMember(
        group_info=GroupInfo.from_dict(payload.get("groupInfo")),
        member=_optional(GroupMember.from_dict, payload.get("member")),
    )


def _deleted_member(payload: dict[str, Any]) -> MemberLeft:
    return MemberLeft(
        group_info=GroupInfo.from_dict(payload.get("groupInfo")),
        member=_optional(GroupMember.from_dict, payload.get("deletedMember")),
        removed=True,
    )


def _left_member(payload: dict[str, Any]) -> MemberLeft:
    return MemberLeft(
        group_info=GroupInfo.from_dict(payload.get("groupInfo")),
        member=_optional(GroupMember.from_dict, payload.get("member")),
    )


def _group_updated(payload: dict[str, Any]) -> GroupUpdated:
    return GroupUpdated(to_group=GroupInfo.from_dict(payload.get("toGroup")))


def _rcv_file_descr_ready(payload: dict[str, Any]) -> RcvFileDescrReady:
    return RcvFileDescrReady(
        transfer=RcvFileTransfer.from_dict(payload.get("rcvFileTransfer")),
        item=_optional(AChatItem.from_dict, payload.get("chatItem")),
    )


def _rcv_file_complete(payload: dict[str, Any]) -> RcvFileComplete:
    return RcvFileComplete(item=AChatItem.from_dict(payload.get("chatItem")))


def _received_contact_request(payload: dict[str, Any]) -> ReceivedContactRequest:
    return ReceivedContactRequest(
        request=ContactRequest.from_dict(payload.get("contactRequest"))
    )


def _chat_error(payload: dict[str, Any]) -> ChatErrorEvent:
    return ChatErrorEvent(error=coerce_dict(payload.get("chatError")))


_DECODERS: dict[str, Callable[[dict[str, Any]], SimplexEvent]] = {
    "newChatItems": _new_chat_items,
    "chatItemUpdated": _chat_item_updated,
    "chatItemsDeleted": _chat_items_deleted,
    "chatItemReaction": _chat_item_reaction,
    "contactConnected": _contact_connected,
    "contactUpdated": _contact_updated,
    "joinedGroupMember": _joined_group_member,
    "deletedMember": _deleted_member,
    "leftMember": _left_member,
    "groupUpdated": _group_updated,
    "rcvFileDescrReady": _rcv_file_descr_ready,
    "rcvFileComplete": _rcv_file_complete,
    "receivedContactRequest": _received_contact_request,
    "chatError": _chat_error,
}

HANDLED_EVENT_TYPES = frozenset(_DECODERS)


def decode_event(event: RawEvent) -> SimplexEvent:
    """Decode a raw event; unknown tags become ``UnknownEvent``.

    Raises ``SimplexProtocolError`` when a known tag carries a malformed payload.
    """
    decoder = _DECODERS.get(event.type)
    if decoder is None:
        return UnknownEvent(type=event.type)
    try:
        return decoder(event.payload)
    except SimplexProtocolError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise SimplexProtocolError(f"malformed {event.type} event: {exc}") from exc
