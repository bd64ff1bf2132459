from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ...core.logging_utils import log_event
from .commands import PAGINATION_BEFORE, PAGINATION_LAST, ChatPagination
from .framework import ConvertMessageFunc, EventSender
from .ids import make_message_id, parse_message_id, parse_portal_id
from .ingest import EventIngestor, item_timestamp, sender_from_dir
from .session import SimplexSession


@dataclass(frozen=True)
class BackfillMessage:
    sender: EventSender
    message_id: str
    timestamp: datetime
    convert: ConvertMessageFunc
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class FetchMessagesResponse:
    messages: list[BackfillMessage] = field(default_factory=list)
    has_more: bool = False


async def fetch_messages(
    session: SimplexSession,
    portal_id: str,
    count: int,
    anchor_message_id: Optional[str] = None,
) -> FetchMessagesResponse:
    """Page chat history, oldest first, ending before ``anchor_message_id``."""
    api = session.require_api()
    chat = parse_portal_id(portal_id)
    if anchor_message_id:
        pagination = ChatPagination(
            type=PAGINATION_BEFORE,
            count=count,
            item_id=parse_message_id(anchor_message_id),
        )
    else:
        pagination = ChatPagination(type=PAGINATION_LAST, count=count)

    result = await api.get_chat(chat, pagination)
    converter = EventIngestor(session)
    messages = []
    for item in result.chat_items:
        message_id = make_message_id(item.item_id)
        messages.append(
            BackfillMessage(
                sender=sender_from_dir(session, item.chat_dir, result.chat_info),
                message_id=message_id,
                timestamp=item_timestamp(item.meta.created_at),
                convert=converter.message_converter(item),
                transaction_id=message_id if item.chat_dir.is_sent else None,
            )
        )
    log_event(
        session.logger,
        logging.DEBUG,
        "simplex.backfill.fetched",
        portal_id=portal_id,
        anchor=anchor_message_id,
        count=len(messages),
    )
    return FetchMessagesResponse(messages=messages, has_more=len(messages) >= count)
