from __future__ import annotations

import pytest

from simplex_bridge.integrations.simplex.errors import InvalidChatIdentifier
from simplex_bridge.integrations.simplex.ids import (
    ChatRef,
    make_dm_portal_id,
    make_group_portal_id,
    make_member_user_id,
    make_message_id,
    make_user_id,
    make_user_login_id,
    parse_message_id,
    parse_portal_id,
    parse_user_id,
    parse_user_login_id,
)


def test_portal_ids_distinguish_direct_and_group_chats() -> None:
    assert make_dm_portal_id(42) == "d:42"
    assert make_group_portal_id(42) == "g:42"

    direct = parse_portal_id("d:42")
    group = parse_portal_id("g:42")
    assert direct == ChatRef("direct", 42)
    assert group == ChatRef("group", 42)
    assert direct.command_ref() == "@42"
    assert group.command_ref() == "#42"
    assert group.is_group and not direct.is_group


@pytest.mark.parametrize("chat_id", [0, 1, 9_007_199_254_740_993, 2**63 - 1])
def test_portal_ids_round_trip(chat_id: int) -> None:
    assert parse_portal_id(make_dm_portal_id(chat_id)).portal_id() == f"d:{chat_id}"
    assert parse_portal_id(make_group_portal_id(chat_id)).chat_id == chat_id


@pytest.mark.parametrize(
    "portal_id",
    ["", "42", "x:1", "d:", "g:", "d:abc", "d:01", "d: 1", "d:1.0", "g:+3", "d:99999999999999999999"],
)
def test_parse_portal_id_rejects_malformed_keys(portal_id: str) -> None:
    with pytest.raises(InvalidChatIdentifier):
        parse_portal_id(portal_id)


def test_user_ids_for_contacts_and_members() -> None:
    assert make_user_id(7) == "7"
    assert parse_user_id("7").contact_id == 7
    assert not parse_user_id("7").is_member

    member_user = make_member_user_id("bWVtYmVy")
    assert member_user == "m:bWVtYmVy"
    ref = parse_user_id(member_user)
    assert ref.is_member
    assert ref.member_id == "bWVtYmVy"
    assert ref.contact_id is None


@pytest.mark.parametrize("user_id", ["", "m:", "abc", "-", "7x"])
def test_parse_user_id_rejects_malformed_keys(user_id: str) -> None:
    with pytest.raises(InvalidChatIdentifier):
        parse_user_id(user_id)


def test_make_member_user_id_requires_member_id() -> None:
    with pytest.raises(InvalidChatIdentifier):
        make_member_user_id("")


def test_message_and_login_ids_round_trip() -> None:
    assert parse_message_id(make_message_id(100)) == 100
    assert parse_user_login_id(make_user_login_id(3)) == 3
    with pytest.raises(InvalidChatIdentifier):
        parse_message_id("100a")
    with pytest.raises(InvalidChatIdentifier):
        parse_user_login_id("")


def test_make_ids_reject_non_integers() -> None:
    with pytest.raises(InvalidChatIdentifier):
        make_dm_portal_id(True)  # type: ignore[arg-type]
    with pytest.raises(InvalidChatIdentifier):
        make_message_id("5")  # type: ignore[arg-type]
