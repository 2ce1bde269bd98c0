"""
SQLite 持久化层 - 会话、活跃会话指针、配对请求与白名单。

表结构：
- sessions:         (chat_key, session_name) → agent 会话句柄，唯一约束保证每个 key 只有一个逻辑会话
- active_sessions:  chat_key → 当前活跃的会话名（默认 "main"）
- pairing_requests: 一次性配对码
- allowlist:        允许通行的 chat key 集合

所有写操作都是基于自然键的 upsert，重试是幂等的。
整个进程共享一个连接，由 threading.RLock 串行化访问；数据库错误（sqlite3.Error）直接向上抛出。
时间统一存储为 UTC ISO 8601 字符串，同一格式下字符串比较即时间比较。
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_key       TEXT NOT NULL,
    session_name   TEXT NOT NULL DEFAULT 'main',
    session_handle TEXT NOT NULL,
    workspace      TEXT,
    agent_id       TEXT NOT NULL,
    created_at     TEXT NOT NULL,
    last_active    TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'active',
    UNIQUE(chat_key, session_name)
);
CREATE INDEX IF NOT EXISTS idx_sessions_chat_key ON sessions(chat_key);
CREATE INDEX IF NOT EXISTS idx_sessions_handle ON sessions(session_handle);

CREATE TABLE IF NOT EXISTS active_sessions (
    chat_key     TEXT PRIMARY KEY,
    session_name TEXT NOT NULL DEFAULT 'main'
);

CREATE TABLE IF NOT EXISTS pairing_requests (
    code         TEXT PRIMARY KEY,
    chat_key     TEXT NOT NULL,
    user_id      TEXT NOT NULL,
    username     TEXT,
    display_name TEXT,
    channel      TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    expires_at   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pairing_expires ON pairing_requests(expires_at);
CREATE INDEX IF NOT EXISTS idx_pairing_chat_key ON pairing_requests(chat_key);

CREATE TABLE IF NOT EXISTS allowlist (
    chat_key TEXT PRIMARY KEY,
    added_at TEXT NOT NULL,
    added_by TEXT
);
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_iso(moment: datetime) -> str:
    """统一转换为 UTC ISO 字符串（naive datetime 视为 UTC）。"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


class BridgeDatabase:
    """
    线程安全的 SQLite DAO。

    在进程启动时构造一次，然后注入给 SessionStore / PairingLedger / AllowlistGate，
    不存在模块级的全局实例。传入 ":memory:" 可以得到一个仅存在于内存中的数据库（测试用）。
    """

    def __init__(self, db_path: str | Path):
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self._db_path = str(Path(self._db_path).expanduser())
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._ensure_schema()

    @property
    def path(self) -> str:
        return self._db_path

    # ── Connection ────────────────────────────────────────────────

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=30.0)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=30000")
        return self._conn

    def _ensure_schema(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.executescript(_SCHEMA)
            conn.commit()
        logger.debug(f"Database ready at {self._db_path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "BridgeDatabase":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ── Sessions ──────────────────────────────────────────────────

    def get_session(self, chat_key: str, session_name: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM sessions WHERE chat_key = ? AND session_name = ?",
                (chat_key, session_name),
            ).fetchone()
            return dict(row) if row else None

    def get_session_by_handle(self, handle: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM sessions WHERE session_handle = ?", (handle,)
            ).fetchone()
            return dict(row) if row else None

    def insert_session_if_absent(
        self,
        chat_key: str,
        session_name: str,
        handle: str,
        agent_id: str,
        workspace: str | None,
        now: str | None = None,
    ) -> dict[str, Any]:
        """插入新会话行；已存在时保持原样。返回插入后（或已有的）行。"""
        now = now or utc_now_iso()
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """
                INSERT INTO sessions (chat_key, session_name, session_handle, workspace, agent_id, created_at, last_active)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_key, session_name) DO NOTHING
                """,
                (chat_key, session_name, handle, workspace, agent_id, now, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM sessions WHERE chat_key = ? AND session_name = ?",
                (chat_key, session_name),
            ).fetchone()
            return dict(row)

    def upsert_session_handle(
        self,
        chat_key: str,
        session_name: str,
        handle: str,
        agent_id: str,
        workspace: str | None = None,
        now: str | None = None,
    ) -> None:
        """写入真实会话句柄并刷新活跃时间；行不存在时创建。"""
        now = now or utc_now_iso()
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """
                INSERT INTO sessions (chat_key, session_name, session_handle, workspace, agent_id, created_at, last_active)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_key, session_name) DO UPDATE SET
                    session_handle = excluded.session_handle,
                    agent_id = excluded.agent_id,
                    workspace = COALESCE(excluded.workspace, sessions.workspace),
                    last_active = excluded.last_active,
                    status = 'active'
                """,
                (chat_key, session_name, handle, workspace, agent_id, now, now),
            )
            conn.commit()

    def touch_session(self, chat_key: str, session_name: str, now: str | None = None) -> bool:
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute(
                "UPDATE sessions SET last_active = ? WHERE chat_key = ? AND session_name = ?",
                (now or utc_now_iso(), chat_key, session_name),
            )
            conn.commit()
            return cur.rowcount > 0

    def list_sessions(self, chat_key: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM sessions WHERE chat_key = ? ORDER BY last_active DESC, id DESC",
                (chat_key,),
            ).fetchall()
            return [dict(r) for r in rows]

    def list_all_sessions(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM sessions ORDER BY last_active DESC, id DESC"
            ).fetchall()
            return [dict(r) for r in rows]

    def delete_session(self, chat_key: str, session_name: str) -> bool:
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute(
                "DELETE FROM sessions WHERE chat_key = ? AND session_name = ?",
                (chat_key, session_name),
            )
            conn.commit()
            return cur.rowcount > 0

    def delete_all_sessions(self, chat_key: str) -> list[str]:
        """删除某个 chat key 下的所有会话与活跃指针，返回被删除的会话名。"""
        with self._lock:
            conn = self._get_conn()
            names = [
                r["session_name"]
                for r in conn.execute(
                    "SELECT session_name FROM sessions WHERE chat_key = ?", (chat_key,)
                ).fetchall()
            ]
            conn.execute("DELETE FROM sessions WHERE chat_key = ?", (chat_key,))
            conn.execute("DELETE FROM active_sessions WHERE chat_key = ?", (chat_key,))
            conn.commit()
            return names

    # ── Active session pointer ────────────────────────────────────

    def get_active_session_name(self, chat_key: str) -> str | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT session_name FROM active_sessions WHERE chat_key = ?", (chat_key,)
            ).fetchone()
            return row["session_name"] if row else None

    def set_active_session_name(self, chat_key: str, session_name: str) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """
                INSERT INTO active_sessions (chat_key, session_name) VALUES (?, ?)
                ON CONFLICT(chat_key) DO UPDATE SET session_name = excluded.session_name
                """,
                (chat_key, session_name),
            )
            conn.commit()

    # ── Pairing requests ──────────────────────────────────────────

    def insert_pairing_request(
        self,
        code: str,
        chat_key: str,
        user_id: str,
        username: str | None,
        display_name: str | None,
        channel: str,
        created_at: str,
        expires_at: str,
    ) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """
                INSERT INTO pairing_requests (code, chat_key, user_id, username, display_name, channel, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (code, chat_key, user_id, username, display_name, channel, created_at, expires_at),
            )
            conn.commit()

    def get_pairing_request(self, code: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM pairing_requests WHERE code = ?", (code,)
            ).fetchone()
            return dict(row) if row else None

    def find_pending_pairing_request(self, chat_key: str, now: str) -> dict[str, Any] | None:
        """查找某个 chat key 尚未过期的配对请求。"""
        with self._lock:
            row = self._get_conn().execute(
                """
                SELECT * FROM pairing_requests
                WHERE chat_key = ? AND expires_at > ?
                ORDER BY created_at DESC LIMIT 1
                """,
                (chat_key, now),
            ).fetchone()
            return dict(row) if row else None

    def delete_pairing_request(self, code: str) -> bool:
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute("DELETE FROM pairing_requests WHERE code = ?", (code,))
            conn.commit()
            return cur.rowcount > 0

    def delete_expired_pairing_requests(self, now: str) -> int:
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute("DELETE FROM pairing_requests WHERE expires_at <= ?", (now,))
            conn.commit()
            return cur.rowcount

    def list_pending_pairing_requests(self, now: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM pairing_requests WHERE expires_at > ? ORDER BY created_at DESC",
                (now,),
            ).fetchall()
            return [dict(r) for r in rows]

    def promote_pairing_request(self, code: str, added_by: str, now: str) -> bool:
        """
        在同一个事务里把配对请求的 chat key 加入白名单并删除该请求。

        返回:
            请求仍然存在并被消费时返回 True；已被并发消费时返回 False
        """
        with self._lock:
            conn = self._get_conn()
            try:
                cur = conn.execute("DELETE FROM pairing_requests WHERE code = ? RETURNING chat_key", (code,))
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    return False
                conn.execute(
                    """
                    INSERT INTO allowlist (chat_key, added_at, added_by) VALUES (?, ?, ?)
                    ON CONFLICT(chat_key) DO NOTHING
                    """,
                    (row["chat_key"], now, added_by),
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            return True

    # ── Allowlist ─────────────────────────────────────────────────

    def is_allowed(self, chat_key: str) -> bool:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT 1 FROM allowlist WHERE chat_key = ?", (chat_key,)
            ).fetchone()
            return row is not None

    def add_to_allowlist(self, chat_key: str, added_by: str | None = None, now: str | None = None) -> bool:
        """加入白名单；已存在时保留原记录并返回 False。"""
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute(
                """
                INSERT INTO allowlist (chat_key, added_at, added_by) VALUES (?, ?, ?)
                ON CONFLICT(chat_key) DO NOTHING
                """,
                (chat_key, now or utc_now_iso(), added_by),
            )
            conn.commit()
            return cur.rowcount > 0

    def remove_from_allowlist(self, chat_key: str) -> bool:
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute("DELETE FROM allowlist WHERE chat_key = ?", (chat_key,))
            conn.commit()
            return cur.rowcount > 0

    def get_allowlist_entry(self, chat_key: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM allowlist WHERE chat_key = ?", (chat_key,)
            ).fetchone()
            return dict(row) if row else None

    def list_allowlist(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM allowlist ORDER BY added_at DESC"
            ).fetchall()
            return [dict(r) for r in rows]
