from __future__ import annotations

import logging

from ...core.logging_utils import log_event
from .chatinfo import get_chat_info
from .errors import SimplexError
from .framework import ChatInfo, ChatResync, GetChatInfoFunc, PortalKey
from .ids import make_dm_portal_id, make_group_portal_id
from .session import SimplexSession


def chat_info_getter(session: SimplexSession, *, with_members: bool) -> GetChatInfoFunc:
    """Return the chat-info callback handed to the framework with each resync."""

    async def _get(portal_key: PortalKey) -> ChatInfo:
        info = await get_chat_info(session, portal_key)
        if with_members:
            return info
        return info.without_members()

    return _get


def queue_chat_resync(
    session: SimplexSession,
    portal_id: str,
    *,
    create_portal: bool,
    with_members: bool = True,
) -> None:
    session.framework.queue_remote_event(
        session.login_id,
        ChatResync(
            portal_key=session.portal_key(portal_id),
            get_chat_info=chat_info_getter(session, with_members=with_members),
            create_portal=create_portal,
            with_members=with_members,
        ),
    )


async def sync_chats(session: SimplexSession) -> int:
    """Queue a resync for every contact and group; returns how many were queued.

    The first sync of a login carries member lists. Later syncs refresh names,
    avatars and topics only, so the framework does not reconcile membership
    again on every reconnect. A login counts as synced only once both the
    contact and the group listing succeeded.
    """
    api = session.api
    if api is None:
        return 0
    logger = session.logger
    with_members = not session.metadata.chats_synced
    queued = 0
    complete = True

    try:
        contacts = await api.list_contacts(session.user_id)
    except SimplexError as exc:
        log_event(logger, logging.ERROR, "simplex.sync.contacts_failed", exc=exc)
        complete = False
    else:
        for contact in contacts:
            queue_chat_resync(
                session,
                make_dm_portal_id(contact.contact_id),
                create_portal=True,
                with_members=with_members,
            )
            queued += 1

    try:
        groups = await api.list_groups(session.user_id)
    except SimplexError as exc:
        log_event(logger, logging.ERROR, "simplex.sync.groups_failed", exc=exc)
        complete = False
    else:
        for group in groups:
            queue_chat_resync(
                session,
                make_group_portal_id(group.group_id),
                create_portal=True,
                with_members=with_members,
            )
            queued += 1

    log_event(
        logger,
        logging.INFO,
        "simplex.sync.completed",
        login_id=session.login_id,
        queued=queued,
        full=with_members,
        complete=complete,
    )
    if complete and not session.metadata.chats_synced:
        session.metadata.chats_synced = True
        await session.save_metadata()
    return queued
