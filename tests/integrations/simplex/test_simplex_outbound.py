from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from simplex_fakes import (
    FakeEngine,
    RecordingFramework,
    chat_item_payload,
    direct_chat,
    envelope,
    group_chat,
    new_chat_items,
    wait_until,
)

from simplex_bridge.integrations.simplex.api import SimplexApi
from simplex_bridge.integrations.simplex.connection import SimplexConnection
from simplex_bridge.integrations.simplex.errors import (
    MediaUnavailableError,
    NotLoggedInError,
    SendFailure,
    SimplexChatError,
    SimplexConnectionClosed,
)
from simplex_bridge.integrations.simplex.framework import (
    MediaRef,
    MessageType,
    RemoteMessage,
)
from simplex_bridge.integrations.simplex.linkpreview import LinkPreviewFetcher
from simplex_bridge.integrations.simplex.outbound import (
    OutboundSender,
    OutgoingMessage,
    normalize_reaction_emoji,
)

THUMBNAIL = "data:image/jpg;base64,dGh1bWI="


def _sent_to(chat: dict[str, Any], item_id: int, text: str, direction: str) -> dict:
    return new_chat_items(
        envelope(chat, chat_item_payload(item_id, text, direction=direction))
    )


def _payload(command: str) -> list[dict[str, Any]]:
    return json.loads(command.split(" json ", 1)[1])


async def _stub_thumbnail(_path: Path) -> str:
    return THUMBNAIL


async def _attach_api(session, make_client):
    client = make_client()
    await client.connect()
    session.api = SimplexApi(client)
    return client


@pytest.mark.anyio
async def test_echo_of_sent_message_is_suppressed_and_other_items_forwarded(
    session, engine: FakeEngine, framework: RecordingFramework, make_client
) -> None:
    engine.on("/_send @42", _sent_to(direct_chat(42), 100, "hi", "directSnd"))
    # The engine reports the sent item on the event stream right after answering.
    engine.after_response["/_send @42"] = lambda socket: socket.event(
        new_chat_items(
            envelope(direct_chat(42), chat_item_payload(100, "hi", direction="directSnd")),
            envelope(direct_chat(42), chat_item_payload(101, "hello back")),
        )
    )
    session.metadata.ws_url = "ws://engine.test:5225"
    connection = SimplexConnection(
        session, client_factory=make_client, backoff=lambda attempt: 0.0
    )
    connection.connect()
    await asyncio.wait_for(connection.wait_connected(), timeout=2.0)
    sender = OutboundSender(session)

    result = await sender.send_message(
        OutgoingMessage(portal_id="d:42", msg_type=MessageType.TEXT, body="hi")
    )

    assert result.message_id == "100"
    assert result.transaction_id == "100"
    assert result.sender_id == "1"
    await wait_until(lambda: len(framework.events_of(RemoteMessage)) == 1)
    forwarded = framework.events_of(RemoteMessage)[0]
    assert forwarded.message_id == "101"
    assert forwarded.portal_key.portal_id == "d:42"
    assert forwarded.sender.sender == "42"
    assert len(session.echoes) == 0
    assert (
        '/_send @42 live=off json [{"mentions":{},"msgContent":{"type":"text","text":"hi"}}]'
        in engine.commands
    )
    await connection.disconnect()


@pytest.mark.anyio
async def test_send_requires_a_connection(session) -> None:
    sender = OutboundSender(session)
    with pytest.raises(NotLoggedInError):
        await sender.send_message(
            OutgoingMessage(portal_id="d:42", msg_type=MessageType.TEXT, body="hi")
        )
    with pytest.raises(NotLoggedInError):
        await sender.add_reaction("d:42", "100", "\U0001f44d")


@pytest.mark.anyio
async def test_reply_carries_quoted_item_and_bad_reply_is_dropped(
    session, engine: FakeEngine, make_client
) -> None:
    engine.on("/_send", _sent_to(group_chat(5), 300, "ok", "groupSnd"))
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    await sender.send_message(
        OutgoingMessage(
            portal_id="g:5", msg_type=MessageType.TEXT, body="ok", reply_to="299"
        )
    )
    await sender.send_message(
        OutgoingMessage(
            portal_id="g:5", msg_type=MessageType.TEXT, body="ok", reply_to="$event"
        )
    )

    first, second = (_payload(cmd)[0] for cmd in engine.commands if cmd.startswith("/_send"))
    assert first["quotedItemId"] == 299
    assert "quotedItemId" not in second
    assert engine.commands[-1].startswith("/_send #5 ")


@pytest.mark.anyio
async def test_rejected_send_is_wrapped_for_the_sender(
    session, engine: FakeEngine, make_client
) -> None:
    engine.on(
        "/_send",
        {
            "type": "chatCmdError",
            "chatError": {"type": "error", "errorType": {"type": "noSndFileUser"}},
        },
    )
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    with pytest.raises(SendFailure) as excinfo:
        await sender.send_message(
            OutgoingMessage(portal_id="d:42", msg_type=MessageType.TEXT, body="hi")
        )
    assert isinstance(excinfo.value.error, SimplexChatError)
    assert excinfo.value.send_notice
    assert len(session.echoes) == 0


@pytest.mark.anyio
async def test_text_send_is_not_retried_after_connection_loss(
    session, engine: FakeEngine, make_client
) -> None:
    engine.on("/_send", _sent_to(direct_chat(42), 100, "hi", "directSnd"))
    client = await _attach_api(session, make_client)
    engine.socket.drop()
    await client.wait_closed()
    sender = OutboundSender(session)

    with pytest.raises(SendFailure) as excinfo:
        await sender.send_message(
            OutgoingMessage(portal_id="d:42", msg_type=MessageType.TEXT, body="hi")
        )
    assert isinstance(excinfo.value.error, SimplexConnectionClosed)
    assert len(engine.dials) == 1


@pytest.mark.anyio
async def test_file_send_uses_temp_file_and_retries_once_on_fresh_connection(
    session, engine: FakeEngine, framework: RecordingFramework, make_client, simplex_config
) -> None:
    seen: dict[str, Any] = {}

    def _answer(command: str) -> dict:
        message = _payload(command)[0]
        path = Path(message["fileSource"]["filePath"])
        seen["path"] = path
        seen["data"] = path.read_bytes()
        seen["content"] = message["msgContent"]
        return _sent_to(group_chat(5), 200, "", "groupSnd")

    engine.on("/_send", _answer)
    framework.media["mxc://in/1"] = b"%PDF-1.4 report"
    client = await _attach_api(session, make_client)
    engine.socket.drop()
    await client.wait_closed()
    sender = OutboundSender(session, thumbnailer=_stub_thumbnail)

    result = await sender.send_message(
        OutgoingMessage(
            portal_id="g:5",
            msg_type=MessageType.FILE,
            body="report.pdf",
            media=MediaRef(url="mxc://in/1"),
            file_name="report.pdf",
        )
    )

    assert result.message_id == "200"
    assert len(engine.dials) == 2
    assert seen["data"] == b"%PDF-1.4 report"
    assert seen["content"] == {"type": "file", "text": "report.pdf"}
    assert seen["path"].parent == simplex_config.files_folder / "tmp"
    assert not seen["path"].exists()
    assert len(session.echoes) == 1


@pytest.mark.anyio
async def test_image_send_carries_caption_and_thumbnail(
    session, engine: FakeEngine, framework: RecordingFramework, make_client
) -> None:
    engine.on("/_send", _sent_to(direct_chat(42), 201, "look", "directSnd"))
    framework.media["mxc://in/2"] = b"\x89PNG\r\n\x1a\n...."
    await _attach_api(session, make_client)
    sender = OutboundSender(session, thumbnailer=_stub_thumbnail)

    await sender.send_message(
        OutgoingMessage(
            portal_id="d:42",
            msg_type=MessageType.IMAGE,
            body="look",
            media=MediaRef(url="mxc://in/2", mime_type="image/png"),
            file_name="cat.png",
            mime_type="image/png",
        )
    )

    content = _payload(engine.commands[-1])[0]["msgContent"]
    assert content == {"type": "image", "text": "look", "image": THUMBNAIL}


@pytest.mark.anyio
async def test_voice_send_reports_duration_in_seconds(
    session, engine: FakeEngine, framework: RecordingFramework, make_client
) -> None:
    engine.on("/_send", _sent_to(direct_chat(42), 202, "", "directSnd"))
    framework.media["mxc://in/3"] = b"OggS voice"
    await _attach_api(session, make_client)
    sender = OutboundSender(session, thumbnailer=_stub_thumbnail)

    await sender.send_message(
        OutgoingMessage(
            portal_id="d:42",
            msg_type=MessageType.AUDIO,
            body="voice.ogg",
            media=MediaRef(url="mxc://in/3"),
            file_name="voice.ogg",
            mime_type="audio/ogg; codecs=opus",
            duration_ms=4_900,
        )
    )

    content = _payload(engine.commands[-1])[0]["msgContent"]
    assert content == {"type": "voice", "text": "", "duration": 4}


@pytest.mark.anyio
async def test_media_download_failure_is_reported_without_sending(
    session, engine: FakeEngine, make_client
) -> None:
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    with pytest.raises(SendFailure) as excinfo:
        await sender.send_message(
            OutgoingMessage(
                portal_id="d:42",
                msg_type=MessageType.FILE,
                body="gone.bin",
                media=MediaRef(url="mxc://missing"),
            )
        )
    assert isinstance(excinfo.value.error, MediaUnavailableError)
    assert not any(cmd.startswith("/_send") for cmd in engine.commands)


@pytest.mark.anyio
async def test_text_with_url_is_sent_as_link_with_preview(
    session, engine: FakeEngine, make_client
) -> None:
    page = (
        "<html><head><meta property=\"og:title\" content=\"Example Page\">"
        "<meta property=\"og:description\" content=\"An example\"></head></html>"
    )

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, html=page)

    engine.on("/_send", _sent_to(direct_chat(42), 400, "", "directSnd"))
    await _attach_api(session, make_client)
    async with LinkPreviewFetcher(transport=httpx.MockTransport(_handler)) as fetcher:
        sender = OutboundSender(session, link_previews=fetcher)
        await sender.send_message(
            OutgoingMessage(
                portal_id="d:42",
                msg_type=MessageType.TEXT,
                body="see https://example.com/page",
            )
        )

    content = _payload(engine.commands[-1])[0]["msgContent"]
    assert content == {
        "type": "link",
        "text": "see https://example.com/page",
        "preview": {
            "uri": "https://example.com/page",
            "title": "Example Page",
            "description": "An example",
            "image": "",
        },
    }


@pytest.mark.parametrize(
    ("emoji", "expected"),
    [
        ("\U0001f44d", "\U0001f44d"),
        ("\U0001f44d\ufe0f", "\U0001f44d"),
        ("\u2764", "\u2764"),
        ("\u2764\ufe0f", "\u2764"),
        ("\u2705\ufe0f", "\u2705"),
        ("\U0001f389", None),
        ("", None),
    ],
)
def test_normalize_reaction_emoji(emoji: str, expected) -> None:
    assert normalize_reaction_emoji(emoji) == expected


@pytest.mark.anyio
async def test_reactions_are_sent_in_canonical_form(
    session, engine: FakeEngine, make_client
) -> None:
    engine.on("/_reaction", {"type": "chatItemReaction", "added": True})
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    assert await sender.add_reaction("d:42", "100", "\u2764\ufe0f") == "\u2764"
    assert await sender.remove_reaction("g:5", "7", "\U0001f44d") == "\U0001f44d"

    reactions = [cmd for cmd in engine.commands if cmd.startswith("/_reaction")]
    assert reactions == [
        '/_reaction @42 100 on {"type":"emoji","emoji":"\u2764"}',
        '/_reaction #5 7 off {"type":"emoji","emoji":"\U0001f44d"}',
    ]


@pytest.mark.anyio
async def test_unsupported_reaction_sends_nothing(
    session, engine: FakeEngine, make_client
) -> None:
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    assert await sender.add_reaction("d:42", "100", "\U0001f389") is None
    assert not any(cmd.startswith("/_reaction") for cmd in engine.commands)


@pytest.mark.anyio
async def test_edit_and_delete_issue_item_commands(
    session, engine: FakeEngine, make_client
) -> None:
    engine.on(
        "/_update item",
        {
            "type": "chatItemUpdated",
            "chatItem": envelope(
                direct_chat(42), chat_item_payload(100, "fixed", direction="directSnd")
            ),
        },
    )
    engine.on("/_delete item", {"type": "chatItemsDeleted", "chatItemDeletions": []})
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    await sender.edit_message("d:42", "100", "fixed")
    await sender.delete_message("d:42", "100")

    assert engine.commands[-2] == (
        '/_update item @42 100 live=off json{"msgContent":{"type":"text","text":"fixed"},'
        '"mentions":{}}'
    )
    assert engine.commands[-1] == '/_delete item @42 [100] {"type":"broadcast"}'


@pytest.mark.anyio
async def test_rejected_delete_and_reaction_are_wrapped_for_the_sender(
    session, engine: FakeEngine, make_client
) -> None:
    rejection = {
        "type": "chatCmdError",
        "chatError": {"type": "error", "errorType": {"type": "invalidChatItemDelete"}},
    }
    engine.on("/_delete item", rejection)
    engine.on("/_reaction", rejection)
    await _attach_api(session, make_client)
    sender = OutboundSender(session)

    with pytest.raises(SendFailure) as deleted:
        await sender.delete_message("d:42", "100")
    assert isinstance(deleted.value.error, SimplexChatError)
    assert deleted.value.send_notice

    with pytest.raises(SendFailure) as reacted:
        await sender.add_reaction("d:42", "100", "\U0001f44d")
    assert isinstance(reacted.value.error, SimplexChatError)


@pytest.mark.anyio
async def test_failed_thumbnail_removes_temp_file(
    session, engine: FakeEngine, framework: RecordingFramework, make_client, simplex_config
) -> None:
    written: list[Path] = []

    async def _broken_thumbnail(path: Path) -> str:
        written.append(path)
        raise RuntimeError("thumbnailer crashed")

    framework.media["mxc://in/4"] = b"\x89PNG\r\n\x1a\n...."
    await _attach_api(session, make_client)
    sender = OutboundSender(session, thumbnailer=_broken_thumbnail)

    with pytest.raises(RuntimeError):
        await sender.send_message(
            OutgoingMessage(
                portal_id="d:42",
                msg_type=MessageType.IMAGE,
                body="cat.png",
                media=MediaRef(url="mxc://in/4"),
                file_name="cat.png",
                mime_type="image/png",
            )
        )

    (path,) = written
    assert path.parent == simplex_config.files_folder / "tmp"
    assert not path.exists()
    assert not any(cmd.startswith("/_send") for cmd in engine.commands)
