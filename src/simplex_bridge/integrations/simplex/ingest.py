"""Turns the engine event stream into framework remote events.

Events are handled one at a time in arrival order. A failure while handling
one event is logged and never reaches the transport or the next event.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from ...core.logging_utils import log_event
from ...core.time_utils import parse_iso_timestamp
from .chatinfo import contact_to_user_info, member_user_id
from .errors import MediaUnavailableError, SimplexError
from .events import (
    ChatErrorEvent,
    ChatItemReaction,
    ChatItemsDeleted,
    ChatItemUpdated,
    ContactConnected,
    ContactUpdated,
    GroupUpdated,
    JoinedGroupMember,
    MemberLeft,
    NewChatItems,
    RcvFileComplete,
    RcvFileDescrReady,
    ReceivedContactRequest,
    SimplexEvent,
    UnknownEvent,
    decode_event,
)
from .framework import (
    ConvertedEdit,
    ConvertedMessage,
    ConvertEditFunc,
    ConvertMessageFunc,
    EditPart,
    EventSender,
    ExistingPart,
    MessagePart,
    MessageType,
    PortalKey,
    RemoteEdit,
    RemoteMessage,
    RemoteMessageRemove,
    RemoteReaction,
)
from .ids import make_dm_portal_id, make_group_portal_id, make_message_id, make_user_id
from .media import resolve_engine_file_path, upload_file_part
from .msgconv import convert_chat_item
from .protocol import RawEvent
from .session import SimplexSession
from .sync import queue_chat_resync
from .types import AChatItem, ChatDir, ChatInfo, ChatItem, Contact, GroupMember

UNKNOWN_SENDER = EventSender(sender="unknown")


def item_timestamp(value: str) -> datetime:
    return parse_iso_timestamp(value) or datetime.now(timezone.utc)


def sender_from_contact(contact: Optional[Contact]) -> EventSender:
    if contact is None:
        return UNKNOWN_SENDER
    return EventSender(sender=make_user_id(contact.contact_id))


def sender_from_member(member: Optional[GroupMember]) -> EventSender:
    if member is None:
        return UNKNOWN_SENDER
    return EventSender(sender=member_user_id(member))


def sender_from_dir(
    session: SimplexSession, chat_dir: ChatDir, chat_info: ChatInfo
) -> EventSender:
    if chat_dir.is_sent:
        return session.self_sender()
    if chat_dir.is_direct_received:
        # the direction carries no contact; the chat does
        return sender_from_contact(chat_info.contact)
    if chat_dir.is_group_received:
        return sender_from_member(chat_dir.group_member)
    return UNKNOWN_SENDER


def portal_id_for(chat_info: ChatInfo) -> Optional[str]:
    ref = chat_info.chat_ref()
    return ref.portal_id() if ref is not None else None


class EventIngestor:
    def __init__(self, session: SimplexSession) -> None:
        self._session = session
        self._logger = session.logger

    async def handle(self, raw: RawEvent) -> None:
        try:
            event = decode_event(raw)
        except SimplexError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.event.decode_failed",
                event_type=raw.type,
                exc=exc,
            )
            return
        try:
            await self.dispatch(event)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "simplex.event.handler_failed",
                event_type=raw.type,
                exc=exc,
            )

    async def dispatch(self, event: SimplexEvent) -> None:
        if isinstance(event, NewChatItems):
            self._handle_new_items(event.items)
        elif isinstance(event, ChatItemUpdated):
            self._handle_updated(event.item)
        elif isinstance(event, ChatItemsDeleted):
            self._handle_deleted(event)
        elif isinstance(event, ChatItemReaction):
            self._handle_reaction(event)
        elif isinstance(event, ReceivedContactRequest):
            await self._handle_contact_request(event)
        elif isinstance(event, ContactConnected):
            queue_chat_resync(
                self._session,
                make_dm_portal_id(event.contact.contact_id),
                create_portal=True,
            )
        elif isinstance(event, ContactUpdated):
            await self._handle_contact_updated(event)
        elif isinstance(event, (JoinedGroupMember, MemberLeft)):
            queue_chat_resync(
                self._session,
                make_group_portal_id(event.group_info.group_id),
                create_portal=False,
            )
        elif isinstance(event, GroupUpdated):
            queue_chat_resync(
                self._session,
                make_group_portal_id(event.to_group.group_id),
                create_portal=False,
            )
        elif isinstance(event, RcvFileDescrReady):
            await self._handle_file_ready(event)
        elif isinstance(event, RcvFileComplete):
            # the file is on disk now; replay the item as a new message
            self._handle_new_items((event.item,))
        elif isinstance(event, ChatErrorEvent):
            log_event(
                self._logger, logging.WARNING, "simplex.event.chat_error", error=event.error
            )
        elif isinstance(event, UnknownEvent):
            log_event(
                self._logger, logging.DEBUG, "simplex.event.unhandled", event_type=event.type
            )

    def _handle_new_items(self, items: Iterable[AChatItem]) -> None:
        session = self._session
        for envelope in items:
            item = envelope.chat_item
            if item.awaiting_file:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "simplex.event.file_pending",
                    item_id=item.item_id,
                    file_name=item.file.file_name if item.file else None,
                )
                continue
            portal_id = portal_id_for(envelope.chat_info)
            if portal_id is None:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "simplex.event.unknown_chat",
                    item_id=item.item_id,
                    chat_type=envelope.chat_info.type,
                )
                continue
            message_id = make_message_id(item.item_id)
            if session.echoes.consume(portal_id, message_id):
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "simplex.event.echo_suppressed",
                    portal_id=portal_id,
                    item_id=item.item_id,
                )
                continue
            portal_key = session.portal_key(portal_id)
            session.framework.queue_remote_event(
                session.login_id,
                RemoteMessage(
                    portal_key=portal_key,
                    sender=sender_from_dir(session, item.chat_dir, envelope.chat_info),
                    message_id=message_id,
                    timestamp=item_timestamp(item.meta.created_at),
                    convert=self.message_converter(item),
                    transaction_id=message_id if item.chat_dir.is_sent else None,
                    create_portal=True,
                ),
            )

    def _handle_updated(self, envelope: AChatItem) -> None:
        session = self._session
        item = envelope.chat_item
        portal_id = portal_id_for(envelope.chat_info)
        if portal_id is None:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.event.unknown_chat",
                item_id=item.item_id,
                chat_type=envelope.chat_info.type,
            )
            return
        session.framework.queue_remote_event(
            session.login_id,
            RemoteEdit(
                portal_key=session.portal_key(portal_id),
                sender=sender_from_dir(session, item.chat_dir, envelope.chat_info),
                target_message_id=make_message_id(item.item_id),
                timestamp=item_timestamp(item.meta.created_at),
                convert=self._edit_converter(item),
            ),
        )

    def _handle_deleted(self, event: ChatItemsDeleted) -> None:
        session = self._session
        for deletion in event.deletions:
            envelope = deletion.deleted
            if envelope is None:
                continue
            item = envelope.chat_item
            portal_id = portal_id_for(envelope.chat_info)
            if portal_id is None:
                continue
            session.framework.queue_remote_event(
                session.login_id,
                RemoteMessageRemove(
                    portal_key=session.portal_key(portal_id),
                    sender=sender_from_dir(session, item.chat_dir, envelope.chat_info),
                    target_message_id=make_message_id(item.item_id),
                    timestamp=datetime.now(timezone.utc),
                ),
            )

    def _handle_reaction(self, event: ChatItemReaction) -> None:
        session = self._session
        reaction = event.reaction
        chat_reaction = reaction.chat_reaction
        if reaction.from_contact is not None:
            sender = sender_from_contact(reaction.from_contact)
        elif reaction.from_member is not None:
            sender = sender_from_member(reaction.from_member)
        elif chat_reaction.chat_dir is not None:
            sender = sender_from_dir(session, chat_reaction.chat_dir, reaction.chat_info)
        else:
            sender = UNKNOWN_SENDER
        target = chat_reaction.chat_item
        portal_id = portal_id_for(reaction.chat_info)
        if sender == UNKNOWN_SENDER or target is None or portal_id is None:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.event.reaction_dropped",
                emoji=chat_reaction.emoji,
                has_sender=sender != UNKNOWN_SENDER,
                has_target=target is not None,
                has_chat=portal_id is not None,
            )
            return
        session.framework.queue_remote_event(
            session.login_id,
            RemoteReaction(
                portal_key=session.portal_key(portal_id),
                sender=sender,
                target_message_id=make_message_id(target.item_id),
                emoji=chat_reaction.emoji,
                timestamp=item_timestamp(chat_reaction.sent_at),
                removed=not event.added,
            ),
        )

    async def _handle_contact_request(self, event: ReceivedContactRequest) -> None:
        session = self._session
        request = event.request
        log_event(
            self._logger,
            logging.INFO,
            "simplex.event.contact_request",
            contact_request_id=request.contact_request_id,
            display_name=request.local_display_name,
        )
        try:
            contact = await session.require_api().accept_contact(
                request.contact_request_id
            )
        except SimplexError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "simplex.event.contact_accept_failed",
                contact_request_id=request.contact_request_id,
                exc=exc,
            )
            return
        queue_chat_resync(
            session, make_dm_portal_id(contact.contact_id), create_portal=True
        )

    async def _handle_contact_updated(self, event: ContactUpdated) -> None:
        contact = event.to_contact
        await self._session.framework.update_ghost_info(
            make_user_id(contact.contact_id),
            contact_to_user_info(self._session, contact),
        )

    async def _handle_file_ready(self, event: RcvFileDescrReady) -> None:
        transfer = event.transfer
        log_event(
            self._logger,
            logging.INFO,
            "simplex.event.file_accept",
            file_id=transfer.file_id,
            file_name=transfer.file_name,
            file_size=transfer.file_size,
        )
        try:
            await self._session.require_api().receive_file(transfer.file_id)
        except SimplexError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "simplex.event.file_accept_failed",
                file_id=transfer.file_id,
                exc=exc,
            )

    def message_converter(self, item: ChatItem) -> ConvertMessageFunc:
        async def _convert(portal_key: PortalKey) -> ConvertedMessage:
            converted = convert_chat_item(item)
            for index, part in enumerate(converted.parts):
                if part.local_path is None:
                    continue
                try:
                    await self._upload_part(portal_key, part, part.local_path)
                except MediaUnavailableError as exc:
                    log_event(
                        self._logger,
                        logging.ERROR,
                        "simplex.event.file_upload_failed",
                        item_id=item.item_id,
                        file_path=part.local_path,
                        exc=exc,
                    )
                    converted.parts[index] = MessagePart(
                        part_id=part.part_id,
                        msg_type=MessageType.NOTICE,
                        body=f"[File transfer failed: {part.file_name or part.body}]",
                    )
            return converted

        return _convert

    def _edit_converter(self, item: ChatItem) -> ConvertEditFunc:
        async def _convert(
            portal_key: PortalKey, existing: Sequence[ExistingPart]
        ) -> ConvertedEdit:
            converted = convert_chat_item(item)
            edits: list[EditPart] = []
            for part in converted.parts:
                if part.local_path is not None:
                    try:
                        await self._upload_part(portal_key, part, part.local_path)
                    except MediaUnavailableError as exc:
                        log_event(
                            self._logger,
                            logging.ERROR,
                            "simplex.event.file_upload_failed",
                            item_id=item.item_id,
                            file_path=part.local_path,
                            exc=exc,
                        )
                target = next((ex for ex in existing if ex.part_id == part.part_id), None)
                if target is None and existing:
                    target = existing[0]
                if target is None:
                    continue
                edits.append(EditPart(existing=target, part=part))
            return ConvertedEdit(modified_parts=tuple(edits))

        return _convert

    async def _upload_part(
        self, portal_key: PortalKey, part: MessagePart, local_path: str
    ) -> None:
        files_folder = self._session.config.files_folder
        try:
            path = resolve_engine_file_path(local_path, files_folder)
        except MediaUnavailableError:
            log_event(
                self._logger,
                logging.WARNING,
                "simplex.event.file_path_unresolved",
                file_path=local_path,
                hint="set simplex.files_folder to the engine's files directory",
            )
            raise
        await upload_file_part(self._session.framework, portal_key, part, path)
