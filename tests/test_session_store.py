"""Tests for the session store and its resumption invariant."""

from ccbridge.session.store import PLACEHOLDER_PREFIX, is_placeholder, new_placeholder_handle

CHAT = "telegram:123"


def test_placeholder_handles():
    handle = new_placeholder_handle()
    assert handle.startswith(PLACEHOLDER_PREFIX)
    assert is_placeholder(handle)
    assert not is_placeholder("3f2a-real-handle")
    assert is_placeholder(None)


def test_new_session_is_not_resumable(store):
    session = store.get_or_create(CHAT, "main", "default", "/tmp/ws")
    assert is_placeholder(session.handle)
    assert not session.resumable
    assert session.agent_id == "default"
    assert session.workspace == "/tmp/ws"


def test_get_or_create_is_idempotent(store):
    first = store.get_or_create(CHAT, "main", "default")
    second = store.get_or_create(CHAT, "main", "coder")
    assert first.handle == second.handle
    assert second.agent_id == "default"


def test_record_handle_makes_session_resumable(store, clock):
    created = store.get_or_create(CHAT, "main", "default", "/tmp/ws")
    clock.advance(minutes=5)
    store.record_handle(CHAT, "main", "real-handle-1", "default")

    session = store.get(CHAT)
    assert session.handle == "real-handle-1"
    assert session.resumable
    assert session.workspace == "/tmp/ws"
    assert session.last_active > created.last_active
    assert store.find_by_handle("real-handle-1").chat_key == CHAT


def test_get_or_create_keeps_recorded_handle(store):
    store.record_handle(CHAT, "main", "real-handle-1", "default")
    assert store.get_or_create(CHAT, "main", "default").handle == "real-handle-1"


def test_record_handle_is_an_upsert(store):
    store.record_handle(CHAT, "work", "h1", "default")
    store.record_handle(CHAT, "work", "h2", "default")
    assert [s.handle for s in store.list(CHAT)] == ["h2"]


def test_sessions_are_scoped_by_name(store):
    store.get_or_create(CHAT, "main", "default")
    store.get_or_create(CHAT, "work", "default")
    store.get_or_create("telegram:456", "main", "default")
    assert {s.session_name for s in store.list(CHAT)} == {"main", "work"}
    assert len(store.list_all()) == 3


def test_list_is_most_recent_first(store, clock):
    store.get_or_create(CHAT, "old", "default")
    clock.advance(minutes=1)
    store.get_or_create(CHAT, "new", "default")
    assert [s.session_name for s in store.list(CHAT)] == ["new", "old"]


def test_active_session_pointer(store):
    assert store.get_active_session_name(CHAT) == "main"
    store.set_active_session_name(CHAT, "work")
    assert store.get_active_session_name(CHAT) == "work"


def test_delete_all_clears_sessions_and_pointer(store):
    store.get_or_create(CHAT, "main", "default")
    store.get_or_create(CHAT, "work", "default")
    store.set_active_session_name(CHAT, "work")

    assert sorted(store.delete_all(CHAT)) == ["main", "work"]
    assert store.list(CHAT) == []
    assert store.get_active_session_name(CHAT) == "main"


def test_delete_single_session(store):
    store.get_or_create(CHAT, "work", "default")
    assert store.delete(CHAT, "work") is True
    assert store.delete(CHAT, "work") is False
    assert store.get(CHAT, "work") is None


def test_touch_missing_session(store):
    assert store.touch(CHAT, "nope") is False
