from session_store import InMemorySessionStore, SqliteSessionStore, build_session_store
from workflow.state import new_chat_state


def _state():
    state = new_chat_state()
    state["session_id"] = "abc"
    state["location"] = {"city": "Wayland", "state": "MA", "coords": {"lat": 42.36, "lon": -71.36}, "radius": 25}
    return state


def test_in_memory_store_isolates_copies():
    store = InMemorySessionStore()
    assert store.get("abc") is None
    assert store.get_or_create("abc")["mode"] is None

    state = _state()
    store.set("abc", state)
    state["location"]["city"] = "Changed"
    loaded = store.get("abc")
    assert loaded["location"]["city"] == "Wayland"
    loaded["mode"] = "quiz"
    assert store.get("abc")["mode"] is None

    assert store.size() == 1
    store.clear("abc")
    assert store.size() == 0


def test_in_memory_clear_all():
    store = build_session_store("memory")
    store.set("a", _state())
    store.set("b", _state())
    store.clear_all()
    assert store.size() == 0


def test_sqlite_store_round_trips_and_resets(tmp_path):
    db_path = tmp_path / "nested" / "sessions.db"
    store = build_session_store("sqlite", str(db_path))
    assert isinstance(store, SqliteSessionStore)

    store.set("abc", _state())
    loaded = store.get("abc")
    assert loaded["location"]["coords"] == {"lat": 42.36, "lon": -71.36}
    assert loaded["last_links"] == []

    reopened = SqliteSessionStore(str(db_path))
    assert reopened.size() == 1
    reopened.clear_all()
    assert store.get("abc") is None
