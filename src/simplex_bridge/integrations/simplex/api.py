from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

from ...core.coercion import coerce_dict, coerce_list
from ...core.logging_utils import log_event
from . import commands
from .commands import DELETE_MODE_BROADCAST, ChatPagination
from .errors import SimplexChatError, SimplexProtocolError, SimplexUnexpectedResponse
from .ids import ChatRef
from .protocol import (
    CHAT_ERROR_RESPONSE_TYPES,
    chat_error_type,
    preview_text,
    response_type,
)
from .types import (
    AChat,
    AChatItem,
    ChatItem,
    ComposedMessage,
    Contact,
    GroupInfo,
    GroupMember,
    GroupProfile,
    MsgContent,
    User,
)


class CommandTransport(Protocol):
    async def send(self, command: str) -> dict[str, Any]: ...

    async def send_with_fallback(self, command: str) -> dict[str, Any]: ...


class SimplexApi:
    """Typed wrappers for the engine commands the bridge uses.

    Every method checks the response ``type`` before decoding; anything else
    raises ``SimplexUnexpectedResponse`` (or ``SimplexChatError`` for error
    responses) and leaves the connection untouched.
    """

    def __init__(
        self, transport: CommandTransport, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)

    @property
    def transport(self) -> CommandTransport:
        return self._transport

    async def get_active_user(self) -> User:
        resp = await self._call(commands.get_active_user(), "activeUser")
        return User.from_dict(resp.get("user"))

    async def list_contacts(self, user_id: int) -> list[Contact]:
        resp = await self._call(commands.list_contacts(user_id), "contactsList")
        return [Contact.from_dict(item) for item in coerce_list(resp.get("contacts"))]

    async def list_groups(self, user_id: int) -> list[GroupInfo]:
        resp = await self._call(commands.list_groups(user_id), "groupsList")
        groups: list[GroupInfo] = []
        for item in coerce_list(resp.get("groups")):
            # Newer engines return [groupInfo, summary] pairs.
            if isinstance(item, list) and item:
                item = item[0]
            groups.append(GroupInfo.from_dict(item))
        return groups

    async def list_members(self, group_id: int) -> list[GroupMember]:
        resp = await self._call(commands.list_members(group_id), "groupMembers")
        group = coerce_dict(resp.get("group"))
        return [GroupMember.from_dict(item) for item in coerce_list(group.get("members"))]

    async def get_chat(self, chat: ChatRef, pagination: ChatPagination) -> AChat:
        resp = await self._call(commands.get_chat(chat, pagination), "apiChat")
        return AChat.from_dict(resp.get("chat"))

    async def send_messages(
        self,
        chat: ChatRef,
        messages: Sequence[ComposedMessage],
        *,
        retry_once: bool = False,
    ) -> list[AChatItem]:
        command = commands.send_messages(chat, messages)
        resp = await self._call(command, "newChatItems", retry_once=retry_once)
        return [AChatItem.from_dict(item) for item in coerce_list(resp.get("chatItems"))]

    async def update_chat_item(
        self, chat: ChatRef, item_id: int, content: MsgContent
    ) -> ChatItem:
        resp = await self._call(
            commands.update_chat_item(chat, item_id, content), "chatItemUpdated"
        )
        return AChatItem.from_dict(resp.get("chatItem")).chat_item

    async def delete_chat_item(
        self, chat: ChatRef, item_id: int, *, mode: str = DELETE_MODE_BROADCAST
    ) -> None:
        await self._call(
            commands.delete_chat_item(chat, [item_id], mode), "chatItemsDeleted"
        )

    async def react_to_chat_item(
        self, chat: ChatRef, item_id: int, emoji: str, *, add: bool
    ) -> None:
        await self._call(
            commands.react_to_chat_item(chat, item_id, emoji, add=add),
            "chatItemReaction",
        )

    async def accept_contact(self, contact_request_id: int) -> Contact:
        resp = await self._call(
            commands.accept_contact(contact_request_id), "acceptingContactRequest"
        )
        return Contact.from_dict(resp.get("contact"))

    async def receive_file(self, file_id: int) -> None:
        await self._call(
            commands.receive_file(file_id),
            "rcvFileAccepted",
            "rcvFileAcceptedSndCancelled",
        )

    async def create_address(self, user_id: int) -> str:
        resp = await self._call(commands.create_address(user_id), "userContactLinkCreated")
        link = coerce_dict(resp.get("connLinkContact"))
        short_link = link.get("connShortLink")
        if isinstance(short_link, str) and short_link:
            return short_link
        full_link = link.get("connFullLink")
        if isinstance(full_link, str) and full_link:
            return full_link
        raise SimplexProtocolError("userContactLinkCreated carried no link")

    async def set_address_auto_accept(
        self,
        user_id: int,
        *,
        auto_accept: bool,
        auto_reply: Optional[MsgContent] = None,
    ) -> None:
        await self._call(
            commands.set_address_settings(
                user_id, auto_accept=auto_accept, auto_reply=auto_reply
            ),
            "userContactLinkUpdated",
        )

    async def join_group(self, group_id: int) -> GroupInfo:
        resp = await self._call(commands.join_group(group_id), "userAcceptedGroupSent")
        return GroupInfo.from_dict(resp.get("groupInfo"))

    async def update_group_profile(
        self, group_id: int, profile: GroupProfile
    ) -> GroupInfo:
        resp = await self._call(
            commands.update_group_profile(group_id, profile), "groupUpdated"
        )
        return GroupInfo.from_dict(resp.get("toGroup"))

    async def _call(
        self, command: str, *expected: str, retry_once: bool = False
    ) -> dict[str, Any]:
        if retry_once:
            resp = await self._transport.send_with_fallback(command)
        else:
            resp = await self._transport.send(command)
        actual = response_type(resp)
        command_name = command.split(" ", 1)[0]
        if actual in expected:
            return resp
        if actual in CHAT_ERROR_RESPONSE_TYPES:
            error_type = chat_error_type(resp)
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.api.chat_error",
                command=command_name,
                error_type=error_type,
            )
            raise SimplexChatError(
                command=command_name, error_type=error_type, data=resp.get("chatError")
            )
        preview = preview_text(resp)
        log_event(
            self._logger,
            logging.WARNING,
            "simplex.api.unexpected_response",
            command=command_name,
            expected=list(expected),
            actual=actual,
            preview=preview,
        )
        raise SimplexUnexpectedResponse(
            command=command_name, expected=expected, actual=actual, preview=preview
        )
