"""Tests for chat key encoding and decoding."""

import pytest

from ccbridge.errors import MalformedKeyError
from ccbridge.routing.chatkey import ChatKey, decode_chat_key, encode_chat_key


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def test_encode_single_bot_dm():
    assert encode_chat_key("telegram", "123") == "telegram:123"


def test_encode_single_bot_group():
    assert encode_chat_key("telegram", "555", is_group=True) == "telegram:group:555"


def test_encode_discord_uses_channel_marker():
    assert encode_chat_key("discord", "999", is_group=True) == "discord:channel:999"


def test_encode_multi_bot_group_with_session():
    key = encode_chat_key("telegram", "555", bot_id="helper", is_group=True, session_name="work")
    assert key == "telegram:helper:group:555:work"


def test_encode_omits_main_session():
    assert encode_chat_key("telegram", "123", session_name="main") == "telegram:123"


def test_encode_rejects_separator_in_segment():
    with pytest.raises(MalformedKeyError):
        encode_chat_key("telegram", "12:3")


def test_bot_id_cannot_be_group_marker():
    with pytest.raises(MalformedKeyError):
        ChatKey("telegram", "123", bot_id="group")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "key, expected",
    [
        ("telegram:123", ChatKey("telegram", "123")),
        ("telegram:123:work", ChatKey("telegram", "123", session_name="work")),
        ("telegram:group:555", ChatKey("telegram", "555", is_group=True)),
        ("telegram:group:-1001234:work", ChatKey("telegram", "-1001234", is_group=True, session_name="work")),
        ("telegram:helper:456", ChatKey("telegram", "456", bot_id="helper")),
        ("telegram:helper:456:work", ChatKey("telegram", "456", bot_id="helper", session_name="work")),
        ("telegram:helper:group:555", ChatKey("telegram", "555", bot_id="helper", is_group=True)),
        ("discord:channel:999", ChatKey("discord", "999", is_group=True)),
        ("discord:ops:channel:999:main", ChatKey("discord", "999", bot_id="ops", is_group=True)),
    ],
)
def test_decode(key, expected):
    assert decode_chat_key(key) == expected


@pytest.mark.parametrize(
    "key",
    [
        "",
        "telegram",
        "telegram::123",
        "telegram:123:",
        "telegram:group",
        "telegram:group:1:2:3",
        "telegram:a:b:c:d:e",
    ],
)
def test_decode_malformed(key):
    with pytest.raises(MalformedKeyError):
        decode_chat_key(key)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"platform": "telegram", "peer_id": "group"},
        {"platform": "telegram", "peer_id": "555", "session_name": "group"},
        {"platform": "discord", "peer_id": "9", "is_group": True, "session_name": "channel"},
        {"platform": "telegram", "peer_id": "1", "bot_id": "group"},
    ],
)
def test_group_marker_segments_are_rejected(kwargs):
    with pytest.raises(MalformedKeyError):
        ChatKey(**kwargs)


def test_marker_named_session_is_rejected_before_encoding():
    with pytest.raises(MalformedKeyError):
        encode_chat_key("telegram", "555", session_name="group")
    # the other platform's marker is an ordinary session name
    key = ChatKey("telegram", "555", session_name="channel")
    assert decode_chat_key(key.encode()) == key


def test_malformed_key_is_value_error():
    with pytest.raises(ValueError):
        decode_chat_key("nope")


@pytest.mark.parametrize(
    "key",
    [
        ChatKey("telegram", "123"),
        ChatKey("telegram", "123", session_name="work"),
        ChatKey("telegram", "555", is_group=True, session_name="work"),
        ChatKey("telegram", "456", bot_id="helper"),
        ChatKey("telegram", "456", bot_id="helper", session_name="work"),
        ChatKey("discord", "999", bot_id="ops", is_group=True, session_name="work"),
    ],
)
def test_round_trip(key):
    assert decode_chat_key(key.encode()) == key


def test_numeric_bot_id_is_read_as_single_bot_dm():
    """A purely numeric bot id cannot be told apart from a peer id."""
    encoded = ChatKey("telegram", "456", bot_id="42").encode()
    assert encoded == "telegram:42:456"
    assert decode_chat_key(encoded) == ChatKey("telegram", "42", session_name="456")


def test_base_and_with_session():
    key = decode_chat_key("telegram:group:555:work")
    assert key.session == "work"
    assert key.base.encode() == "telegram:group:555"
    assert key.with_session("main").session == "main"
    assert str(key.with_session(None)) == "telegram:group:555"
