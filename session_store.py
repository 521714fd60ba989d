from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from workflow.state import ChatState, new_chat_state

LOGGER = logging.getLogger("golf.sessions")


class SessionStore:
    """Maps an opaque session id to its conversation state."""

    def get(self, session_id: str) -> Optional[ChatState]:
        raise NotImplementedError

    def set(self, session_id: str, state: ChatState) -> None:
        raise NotImplementedError

    def clear(self, session_id: str) -> None:
        raise NotImplementedError

    def clear_all(self) -> None:
        raise NotImplementedError

    def size(self) -> int:
        raise NotImplementedError

    def get_or_create(self, session_id: str) -> ChatState:
        state = self.get(session_id)
        if state is None:
            state = new_chat_state()
        return state


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, ChatState] = {}

    def get(self, session_id: str) -> Optional[ChatState]:
        with self._lock:
            state = self._sessions.get(session_id)
            # Callers mutate their copy; the stored state changes only through set().
            return copy.deepcopy(state) if state is not None else None

    def set(self, session_id: str, state: ChatState) -> None:
        with self._lock:
            self._sessions[session_id] = copy.deepcopy(state)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._sessions.clear()
        LOGGER.info("[reset] chat sessions cleared")

    def size(self) -> int:
        with self._lock:
            return len(self._sessions)


class SqliteSessionStore(SessionStore):
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS chat_sessions (
                  id TEXT PRIMARY KEY,
                  state_json TEXT NOT NULL,
                  created_at INTEGER NOT NULL,
                  updated_at INTEGER NOT NULL
                );
                """
            )

    def get(self, session_id: str) -> Optional[ChatState]:
        with self._connect() as conn:
            row = conn.execute("SELECT state_json FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        if not row:
            return None
        try:
            parsed = json.loads(str(row["state_json"]))
        except ValueError:
            LOGGER.warning("discarding unreadable session state for %s", session_id)
            return None
        if not isinstance(parsed, dict):
            return None
        state = new_chat_state()
        state.update(parsed)
        return state

    def set(self, session_id: str, state: ChatState) -> None:
        now = int(time.time())
        state_json = json.dumps(_sanitize_for_json(dict(state)), ensure_ascii=False)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions (id, state_json, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET state_json = excluded.state_json, updated_at = excluded.updated_at
                """,
                (session_id, state_json, now, now),
            )
            conn.commit()

    def clear(self, session_id: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
            conn.commit()

    def clear_all(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("DELETE FROM chat_sessions")
            conn.commit()
        LOGGER.info("[reset] chat sessions cleared")

    def size(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM chat_sessions").fetchone()
        return int(row["n"]) if row else 0


def _sanitize_for_json(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_sanitize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _sanitize_for_json(v) for k, v in value.items()}
    return str(value)


def build_session_store(backend: str, db_path: str = "data/sessions.db") -> SessionStore:
    if backend == "sqlite":
        return SqliteSessionStore(db_path)
    return InMemorySessionStore()
