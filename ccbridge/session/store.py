"""
会话存储模块 - (chat key, 会话名) → agent 会话句柄 的映射。

【会话生命周期】
  不存在 → 占位（新建，句柄为本地生成的占位符，不可恢复）
         → 已绑定（句柄为 agent 返回的真实会话 ID，可恢复）
         → 已关闭（被删除）

占位句柄格式为 "ccb-<毫秒时间戳>-<随机十六进制>"，永远不能作为恢复令牌传给 agent。
数据库中的行是唯一可信来源。
"""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from ccbridge.db.database import BridgeDatabase, to_iso
from ccbridge.routing.chatkey import DEFAULT_SESSION_NAME

PLACEHOLDER_PREFIX = "ccb-"


def new_placeholder_handle() -> str:
    """生成占位会话句柄，如 "ccb-1718000000000-9f3a1c2b"。"""
    return f"{PLACEHOLDER_PREFIX}{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def is_placeholder(handle: str | None) -> bool:
    return not handle or handle.startswith(PLACEHOLDER_PREFIX)


@dataclass
class Session:
    """
    会话记录。

    属性:
        chat_key: 所属对话的 chat key（不含会话名）
        session_name: 会话名，默认 "main"
        handle: agent 会话句柄（可能是占位符）
        agent_id: 绑定的 Agent ID
        workspace: 创建时的工作区快照
        created_at / last_active: 创建时间与最后活跃时间（UTC）
        status: active | idle | closed
    """

    chat_key: str
    session_name: str
    handle: str
    agent_id: str
    workspace: str | None
    created_at: datetime
    last_active: datetime
    status: str = "active"

    @property
    def resumable(self) -> bool:
        """只有真实的 agent 会话句柄才能用于恢复上下文。"""
        return not is_placeholder(self.handle)

    @classmethod
    def from_row(cls, row: dict) -> "Session":
        return cls(
            chat_key=row["chat_key"],
            session_name=row["session_name"],
            handle=row["session_handle"],
            agent_id=row["agent_id"],
            workspace=row.get("workspace"),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_active=datetime.fromisoformat(row["last_active"]),
            status=row.get("status") or "active",
        )


class SessionStore:
    """
    会话存储 - BridgeDatabase 之上的会话语义层。

    所有写操作都是自然键 (chat_key, session_name) 上的 upsert，重试幂等。
    """

    def __init__(self, db: BridgeDatabase, clock: Callable[[], datetime] | None = None):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> str:
        return to_iso(self._clock())

    def get(self, chat_key: str, session_name: str = DEFAULT_SESSION_NAME) -> Session | None:
        row = self.db.get_session(chat_key, session_name)
        return Session.from_row(row) if row else None

    def get_or_create(
        self,
        chat_key: str,
        session_name: str,
        agent_id: str,
        workspace: str | None = None,
    ) -> Session:
        """返回已有会话；不存在时插入一行带占位句柄的新会话。"""
        row = self.db.insert_session_if_absent(
            chat_key, session_name, new_placeholder_handle(), agent_id, workspace, now=self._now()
        )
        return Session.from_row(row)

    def record_handle(
        self,
        chat_key: str,
        session_name: str,
        handle: str,
        agent_id: str,
        workspace: str | None = None,
    ) -> None:
        """一轮对话完成后写入真实句柄并刷新活跃时间。"""
        self.db.upsert_session_handle(chat_key, session_name, handle, agent_id, workspace, now=self._now())

    def touch(self, chat_key: str, session_name: str = DEFAULT_SESSION_NAME) -> bool:
        return self.db.touch_session(chat_key, session_name, now=self._now())

    def list_all(self) -> list[Session]:
        return [Session.from_row(r) for r in self.db.list_all_sessions()]

    def find_by_handle(self, handle: str) -> Session | None:
        row = self.db.get_session_by_handle(handle)
        return Session.from_row(row) if row else None

    def delete(self, chat_key: str, session_name: str = DEFAULT_SESSION_NAME) -> bool:
        return self.db.delete_session(chat_key, session_name)

    def delete_all(self, chat_key: str) -> list[str]:
        """删除对话下的所有会话（含活跃指针），返回被删除的会话名。"""
        return self.db.delete_all_sessions(chat_key)

    def get_active_session_name(self, chat_key: str) -> str:
        return self.db.get_active_session_name(chat_key) or DEFAULT_SESSION_NAME

    def set_active_session_name(self, chat_key: str, session_name: str) -> None:
        self.db.set_active_session_name(chat_key, session_name)

    # 必须位于类体末尾，否则会遮蔽后续注解中的内置 list
    def list(self, chat_key: str) -> list[Session]:
        """列出某个对话下的所有会话，最近活跃的在前。"""
        return [Session.from_row(r) for r in self.db.list_sessions(chat_key)]
