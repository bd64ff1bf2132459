"""Conversion between engine chat items and framework message content."""

from __future__ import annotations

import re
from typing import Optional, Sequence

from .constants import DELETED_MESSAGE_NOTICE
from .framework import ConvertedMessage, MessagePart, MessageType
from .ids import make_message_id
from .types import ChatItem, FormattedText, LinkPreview, MsgContent

FILE_PART_ID = "file"
_URL_RE = re.compile(r"https?://[^\s\"'<>]+")

_CONTENT_MESSAGE_TYPES = {
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "voice": MessageType.AUDIO,
}

_SPAN_TAGS = {
    "bold": "strong",
    "italic": "em",
    "strikeThrough": "del",
    "snipped": "code",
}


def escape_html(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&#34;")
    )


def formatted_text_to_html(spans: Sequence[FormattedText]) -> tuple[str, Optional[str]]:
    """Render formatted spans as ``(plain_body, html_or_None)``.

    HTML is only produced when at least one span carries a format.
    """
    body_parts: list[str] = []
    html_parts: list[str] = []
    has_formatting = False
    for span in spans:
        body_parts.append(span.text)
        escaped = escape_html(span.text)
        if span.format_type is None:
            html_parts.append(escaped)
            continue
        has_formatting = True
        tag = _SPAN_TAGS.get(span.format_type)
        if tag is not None:
            html_parts.append(f"<{tag}>{escaped}</{tag}>")
        elif span.format_type == "uri":
            html_parts.append(f'<a href="{escaped}">{escaped}</a>')
        elif span.format_type == "email":
            html_parts.append(f'<a href="mailto:{escaped}">{escaped}</a>')
        else:
            # mentions and anything newer render as plain text
            html_parts.append(escaped)
    body = "".join(body_parts)
    return body, ("".join(html_parts) if has_formatting else None)


def _link_html(preview: LinkPreview, body: str) -> tuple[str, str]:
    if preview.uri not in body:
        body = f"{body}\n{preview.uri}" if body else preview.uri
    html = (
        f'<strong><a href="{escape_html(preview.uri)}">'
        f"{escape_html(preview.title)}</a></strong>"
    )
    if preview.description:
        html += f"<br><em>{escape_html(preview.description)}</em>"
    return body, html


def convert_chat_item(item: ChatItem) -> ConvertedMessage:
    """Convert an engine chat item into framework message parts.

    A materialized file attachment yields a single ``file`` part whose
    ``local_path`` still has to be uploaded by the caller.
    """
    reply_to = (
        make_message_id(item.quoted_item_id) if item.quoted_item_id is not None else None
    )
    if item.meta.item_deleted:
        return ConvertedMessage(
            parts=[
                MessagePart(
                    part_id="", msg_type=MessageType.NOTICE, body=DELETED_MESSAGE_NOTICE
                )
            ],
            reply_to=reply_to,
        )

    body = item.meta.item_text
    html: Optional[str] = None
    if item.formatted_text:
        body, html = formatted_text_to_html(item.formatted_text)

    content = item.msg_content
    if content is not None and content.type == "link" and content.preview is not None:
        body, html = _link_html(content.preview, body)

    if item.file is not None and item.file.file_path:
        msg_type = MessageType.FILE
        if content is not None:
            msg_type = _CONTENT_MESSAGE_TYPES.get(content.type, MessageType.FILE)
        file_body = item.file.file_name
        file_name = None
        if body:
            # the caption becomes the body and the real name moves to file_name
            file_body = body
            file_name = item.file.file_name
        return ConvertedMessage(
            parts=[
                MessagePart(
                    part_id=FILE_PART_ID,
                    msg_type=msg_type,
                    body=file_body,
                    file_name=file_name,
                    size=item.file.file_size,
                    local_path=item.file.file_path,
                )
            ],
            reply_to=reply_to,
        )

    return ConvertedMessage(
        parts=[
            MessagePart(
                part_id="", msg_type=MessageType.TEXT, body=body, formatted_body=html
            )
        ],
        reply_to=reply_to,
    )


def outgoing_text_content(body: str) -> MsgContent:
    """Plain-text content for a local text, notice or emote message.

    The engine has its own markup, so formatted bodies are not carried over.
    """
    return MsgContent.text_content(body)


def extract_first_url(text: str) -> Optional[str]:
    match = _URL_RE.search(text or "")
    return match.group(0) if match else None
