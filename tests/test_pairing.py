"""Tests for pairing code issuance, approval and expiry."""

import re
from datetime import timedelta

import pytest

from ccbridge.bus.events import UserInfo
from ccbridge.errors import PairingExpiredError, PairingNotFoundError
from ccbridge.security.pairing import PairingLedger

CHAT = "telegram:123"


@pytest.fixture
def ledger(db, clock):
    return PairingLedger(db, clock=clock)


@pytest.fixture
def user():
    return UserInfo(id="123", channel="telegram", username="alice", display_name="Alice")


def test_issue_returns_six_uppercase_hex_chars(ledger, user):
    code = ledger.issue(CHAT, user)
    assert re.fullmatch(r"[0-9A-F]{6}", code)


def test_issue_reuses_pending_code(ledger, user):
    assert ledger.issue(CHAT, user) == ledger.issue(CHAT, user)
    assert len(ledger.list_pending()) == 1


def test_approve_allowlists_chat(ledger, user, db):
    code = ledger.issue(CHAT, user)

    approval = ledger.approve(code.lower())

    assert approval.chat_key == CHAT
    assert approval.user.username == "alice"
    assert db.is_allowed(CHAT)
    assert db.get_allowlist_entry(CHAT)["added_by"] == f"pairing:{code}"
    assert ledger.list_pending() == []


def test_code_is_single_use(ledger, user):
    code = ledger.issue(CHAT, user)
    ledger.approve(code)
    with pytest.raises(PairingNotFoundError):
        ledger.approve(code)


def test_unknown_code(ledger):
    with pytest.raises(PairingNotFoundError, match="Invalid or expired pairing code"):
        ledger.approve("ABCDEF")


def test_zero_ttl_code_is_expired_immediately(ledger, user, db):
    code = ledger.issue(CHAT, user, ttl=timedelta(0))

    with pytest.raises(PairingExpiredError, match="expired"):
        ledger.approve(code)
    assert not db.is_allowed(CHAT)
    # expired requests are removed on detection
    with pytest.raises(PairingNotFoundError):
        ledger.approve(code)


def test_code_expires_after_an_hour(ledger, user, clock):
    code = ledger.issue(CHAT, user)
    clock.advance(minutes=59)
    assert ledger.get_request(code) is not None

    clock.advance(minutes=1)
    assert ledger.get_request(code) is None
    assert ledger.list_pending() == []
    with pytest.raises(PairingExpiredError):
        ledger.approve(code)


def test_new_code_after_expiry(ledger, user, clock):
    first = ledger.issue(CHAT, user)
    clock.advance(hours=2)
    second = ledger.issue(CHAT, user)
    assert second != first
    assert ledger.get_request(first) is None


def test_issue_reaps_expired_requests(ledger, user, clock, db):
    stale = ledger.issue("telegram:999", user, ttl=timedelta(minutes=1))
    clock.advance(minutes=2)
    ledger.issue(CHAT, user)
    assert db.get_pairing_request(stale) is None
    assert ledger.cleanup() == 0


def test_reject(ledger, user, db):
    code = ledger.issue(CHAT, user)
    assert ledger.reject(f" {code.lower()} ") is True
    assert ledger.reject(code) is False
    assert not db.is_allowed(CHAT)


def test_cleanup_counts_removed(ledger, user, clock):
    ledger.issue("telegram:1", user)
    ledger.issue("telegram:2", user)
    clock.advance(hours=1)
    assert ledger.cleanup() == 2
