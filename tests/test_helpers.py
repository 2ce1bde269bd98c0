"""Tests for the small formatting helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from ccbridge.utils.helpers import chunk_text, format_age, truncate_string


def test_chunk_text_prefers_newlines():
    text = "a" * 6 + "\n" + "b" * 6
    assert chunk_text(text, 8) == ["aaaaaa", "bbbbbb"]


def test_chunk_text_hard_cuts_long_lines():
    assert chunk_text("x" * 10, 4) == ["xxxx", "xxxx", "xx"]
    assert chunk_text("", 4) == []
    with pytest.raises(ValueError):
        chunk_text("x", 0)


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(seconds=30), "just now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3), "3h ago"),
        (timedelta(days=2, hours=1), "2d ago"),
    ],
)
def test_format_age(delta, expected):
    now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
    assert format_age(now - delta, now) == expected


def test_truncate_string():
    assert truncate_string("short") == "short"
    assert truncate_string("abcdefghij", max_len=6) == "abc..."
