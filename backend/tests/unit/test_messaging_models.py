from datetime import datetime, timezone

import pytest

from revere.domain.messaging.exceptions import InvalidParticipantError
from revere.domain.messaging.models import MemberProfile, Message, Thread, order_messages, parse_timestamp


def _message(message_id: str, client_created_at: int, seq: int) -> Message:
    return Message(
        id=message_id,
        thread_id="u1_u2",
        sender_id="u1",
        recipient_id="u2",
        body=message_id,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        client_created_at=client_created_at,
        seq=seq,
    )


def test_thread_from_legacy_document_ignores_unknown_fields():
    document = {
        "members": ["u1", "u2"],
        "memberUsernames": {"u1": "ana", "u2": "ben"},
        "memberAvatars": {"u1": "https://cdn.example/u1.png"},
        "lastMessage": "see you",
        "unread": {"u1": 0, "u2": "3"},
        "updatedAt": 1_700_000_000_000,
        "pinned": True,
        "legacyFlag": "x",
    }

    thread = Thread.from_document("u1_u2", document)

    assert thread.members == ("u1", "u2")
    assert thread.member_display_names == {"u1": "ana", "u2": "ben"}
    assert thread.member_avatars == {"u1": "https://cdn.example/u1.png"}
    assert thread.last_message_preview == "see you"
    assert thread.unread_count == {"u1": 0, "u2": 3}
    assert thread.updated_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert not hasattr(thread, "pinned")


def test_thread_defaults_and_member_helpers():
    thread = Thread(id="u1_u2", members=("u1", "u2"))
    assert thread.last_message_preview == ""
    assert thread.unread_for("u2") == 0
    assert thread.other_member("u1") == "u2"
    with pytest.raises(InvalidParticipantError):
        thread.other_member("u9")


def test_thread_requires_two_distinct_members():
    with pytest.raises(InvalidParticipantError):
        Thread(id="u1_u1", members=("u1", "u1"))


def test_negative_or_garbage_counters_clamp_to_zero():
    thread = Thread.from_document("u1_u2", {"members": ["u1", "u2"], "unread_count": {"u1": -4, "u2": "x"}})
    assert thread.unread_count == {"u1": 0, "u2": 0}


def test_message_from_legacy_document():
    message = Message.from_document(
        "u1_u2",
        "m1",
        {"text": "hi", "from": "u1", "to": "u2", "clientCreatedAt": 1_700_000_000_123, "extra": 1},
    )
    assert message.body == "hi"
    assert message.sender_id == "u1"
    assert message.recipient_id == "u2"
    assert message.client_created_at == 1_700_000_000_123
    assert message.created_at.year == 2023


def test_order_messages_by_client_timestamp_then_insertion():
    messages = [_message("five", 5, 1), _message("one", 1, 2), _message("three", 3, 3)]
    assert [m.client_created_at for m in order_messages(messages)] == [1, 3, 5]

    ties = [_message("late", 7, 9), _message("early", 7, 2)]
    assert [m.id for m in order_messages(ties)] == ["early", "late"]


def test_profile_display_name_fallbacks():
    assert MemberProfile(user_id="u1", username="ana").display_name("me") == "ana"
    assert MemberProfile(user_id="u1", email="carol@example.com").display_name("me") == "carol"
    assert MemberProfile(user_id="u1").display_name("me") == "me"


def test_profile_from_legacy_document():
    profile = MemberProfile.from_document(
        "u1", {"username": "", "photoURL": "p.png", "accountStatus": "banned", "banReason": "spam"}
    )
    assert profile.username is None
    assert profile.photo_url == "p.png"
    assert profile.is_banned
    assert profile.ban_reason == "spam"


def test_parse_timestamp_variants():
    assert parse_timestamp(None) is None
    assert parse_timestamp("not a date") is None
    naive = parse_timestamp("2024-05-01T10:00:00")
    assert naive.tzinfo is timezone.utc
    assert parse_timestamp(1_700_000_000) == parse_timestamp(1_700_000_000_000)
