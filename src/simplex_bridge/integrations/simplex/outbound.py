"""Outbound path: local messages, edits, deletions and reactions to the engine."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ...core.logging_utils import log_event
from .commands import DELETE_MODE_BROADCAST
from .constants import SUPPORTED_REACTIONS
from .errors import (
    InvalidChatIdentifier,
    MediaUnavailableError,
    SendFailure,
    SimplexError,
    SimplexProtocolError,
    wrap_send_error,
)
from .framework import MEDIA_MESSAGE_TYPES, MediaRef, MessageType
from .ids import make_message_id, parse_message_id, parse_portal_id
from .linkpreview import LinkPreviewFetcher
from .media import (
    ffmpeg_thumbnail_data_uri,
    guess_mime_type,
    normalize_mime_type,
    outbound_content_type,
    remove_quietly,
    write_temp_file,
)
from .msgconv import extract_first_url, outgoing_text_content
from .session import SimplexSession
from .types import ComposedMessage, MsgContent

Thumbnailer = Callable[[Path], Awaitable[str]]

_VARIATION_SELECTOR = "\ufe0f"
REACTION_ALIASES: dict[str, str] = {}
for _emoji in SUPPORTED_REACTIONS:
    REACTION_ALIASES[_emoji] = _emoji
    REACTION_ALIASES[_emoji + _VARIATION_SELECTOR] = _emoji


def normalize_reaction_emoji(emoji: str) -> Optional[str]:
    """Return the engine's form of ``emoji``, or None if it cannot be sent."""
    return REACTION_ALIASES.get(emoji)


@dataclass(frozen=True)
class OutgoingMessage:
    portal_id: str
    msg_type: MessageType
    body: str
    reply_to: Optional[str] = None
    media: Optional[MediaRef] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def caption(self) -> str:
        if self.file_name and self.body and self.body != self.file_name:
            return self.body
        return ""


@dataclass(frozen=True)
class SendResult:
    message_id: str
    sender_id: str
    timestamp: datetime
    transaction_id: str


class OutboundSender:
    def __init__(
        self,
        session: SimplexSession,
        *,
        link_previews: Optional[LinkPreviewFetcher] = None,
        thumbnailer: Optional[Thumbnailer] = None,
    ) -> None:
        self._session = session
        self._logger = session.logger
        self._link_previews = link_previews
        self._thumbnailer = thumbnailer or self._ffmpeg_thumbnail

    async def send_message(self, message: OutgoingMessage) -> SendResult:
        session = self._session
        api = session.require_api()
        chat = parse_portal_id(message.portal_id)
        composed = ComposedMessage(
            msg_content=outgoing_text_content(message.body),
            quoted_item_id=self._quoted_item_id(message.reply_to),
        )

        temp_path: Optional[Path] = None
        try:
            if message.msg_type in MEDIA_MESSAGE_TYPES:
                temp_path, composed = await self._prepare_file(message, composed)
            elif self._link_previews is not None:
                composed = await self._with_link_preview(composed)
            try:
                sent = await api.send_messages(
                    chat, [composed], retry_once=composed.file_path is not None
                )
            except SimplexError as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "simplex.send.failed",
                    portal_id=message.portal_id,
                    exc=exc,
                )
                raise wrap_send_error(exc) from exc
        finally:
            # the engine has read the file once it answered
            remove_quietly(temp_path)

        if not sent:
            raise SendFailure(SimplexProtocolError("no chat items returned after send"))
        message_id = make_message_id(sent[0].chat_item.item_id)
        # Recorded before yielding to the loop so the echo cannot overtake it.
        session.echoes.record(message.portal_id, message_id)
        log_event(
            self._logger,
            logging.DEBUG,
            "simplex.send.sent",
            portal_id=message.portal_id,
            message_id=message_id,
            file=composed.file_path is not None,
        )
        return SendResult(
            message_id=message_id,
            sender_id=session.self_user_id,
            timestamp=datetime.now(timezone.utc),
            transaction_id=message_id,
        )

    async def edit_message(self, portal_id: str, target_message_id: str, body: str) -> None:
        api = self._session.require_api()
        chat = parse_portal_id(portal_id)
        item_id = parse_message_id(target_message_id)
        try:
            await api.update_chat_item(chat, item_id, outgoing_text_content(body))
        except SimplexError as exc:
            raise wrap_send_error(exc) from exc

    async def delete_message(self, portal_id: str, target_message_id: str) -> None:
        api = self._session.require_api()
        chat = parse_portal_id(portal_id)
        item_id = parse_message_id(target_message_id)
        try:
            await api.delete_chat_item(chat, item_id, mode=DELETE_MODE_BROADCAST)
        except SimplexError as exc:
            raise wrap_send_error(exc) from exc

    async def add_reaction(
        self, portal_id: str, target_message_id: str, emoji: str
    ) -> Optional[str]:
        """React with ``emoji``; returns the emoji sent, or None if unsupported."""
        return await self._react(portal_id, target_message_id, emoji, add=True)

    async def remove_reaction(
        self, portal_id: str, target_message_id: str, emoji: str
    ) -> Optional[str]:
        return await self._react(portal_id, target_message_id, emoji, add=False)

    async def _react(
        self, portal_id: str, target_message_id: str, emoji: str, *, add: bool
    ) -> Optional[str]:
        api = self._session.require_api()
        canonical = normalize_reaction_emoji(emoji)
        if canonical is None:
            log_event(
                self._logger,
                logging.DEBUG,
                "simplex.send.reaction_unsupported",
                emoji=emoji,
                add=add,
            )
            return None
        chat = parse_portal_id(portal_id)
        item_id = parse_message_id(target_message_id)
        try:
            await api.react_to_chat_item(chat, item_id, canonical, add=add)
        except SimplexError as exc:
            raise wrap_send_error(exc) from exc
        return canonical

    def _quoted_item_id(self, reply_to: Optional[str]) -> Optional[int]:
        if not reply_to:
            return None
        try:
            return parse_message_id(reply_to)
        except InvalidChatIdentifier:
            log_event(
                self._logger, logging.DEBUG, "simplex.send.reply_unresolved", reply_to=reply_to
            )
            return None

    async def _prepare_file(
        self, message: OutgoingMessage, composed: ComposedMessage
    ) -> tuple[Path, ComposedMessage]:
        if message.media is None:
            raise wrap_send_error(MediaUnavailableError("media message without a URL"))
        try:
            data = await self._session.framework.download_media(message.media)
        except Exception as exc:
            raise wrap_send_error(
                MediaUnavailableError(f"media download failed: {exc}")
            ) from exc

        file_name = message.file_name or message.body or "file"
        temp_path = await asyncio.to_thread(
            write_temp_file, data, directory=self._temp_dir(), file_name=file_name
        )
        try:
            content = await self._file_content(message, temp_path, file_name, data)
        except BaseException:
            remove_quietly(temp_path)
            raise
        return temp_path, ComposedMessage(
            msg_content=content,
            file_path=str(temp_path),
            quoted_item_id=composed.quoted_item_id,
            mentions=composed.mentions,
        )

    async def _file_content(
        self, message: OutgoingMessage, temp_path: Path, file_name: str, data: bytes
    ) -> MsgContent:
        mime_type = normalize_mime_type(message.mime_type) or guess_mime_type(
            file_name, data
        )
        content_type = outbound_content_type(mime_type)
        duration = (message.duration_ms or 0) // 1000
        caption = message.caption
        if content_type == "image":
            return MsgContent.image_content(caption, await self._thumbnailer(temp_path))
        if content_type == "video":
            thumbnail = await self._thumbnailer(temp_path)
            return MsgContent.video_content(caption, thumbnail, duration)
        if content_type == "voice":
            return MsgContent.voice_content(caption, duration)
        return MsgContent.file_content(file_name)

    async def _with_link_preview(self, composed: ComposedMessage) -> ComposedMessage:
        fetcher = self._link_previews
        content = composed.msg_content
        if fetcher is None or content.type != "text":
            return composed
        uri = extract_first_url(content.text)
        if uri is None:
            return composed
        log_event(self._logger, logging.DEBUG, "simplex.send.preview_fetch", uri=uri)
        preview = await fetcher.fetch(uri)
        if preview is None:
            return composed
        return ComposedMessage(
            msg_content=MsgContent.link_content(content.text, preview),
            quoted_item_id=composed.quoted_item_id,
            mentions=composed.mentions,
        )

    def _temp_dir(self) -> Path:
        files_folder = self._session.config.files_folder
        if files_folder is not None:
            return files_folder / "tmp"
        return Path(tempfile.gettempdir())

    async def _ffmpeg_thumbnail(self, path: Path) -> str:
        return await ffmpeg_thumbnail_data_uri(path, logger=self._logger)
