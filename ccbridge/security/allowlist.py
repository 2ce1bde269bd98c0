"""
白名单访问控制模块。

decide() 的策略语义：
- open：总是放行
- pairing：chat key 在白名单中，或用户 ID / 用户名在 allow_from 中时放行；
  否则拒绝，拒绝原因提示调用方签发配对码
- allowlist：同样的检查，但拒绝原因表示只能由运维人员手动加入白名单
- 渠道被禁用时无论策略如何都拒绝

decide() 只读取数据库，不做任何写入；签发配对码是调用方的职责。
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from loguru import logger

from ccbridge.bus.events import UserInfo
from ccbridge.db.database import BridgeDatabase
from ccbridge.routing.chatkey import decode_chat_key


class DenyReason(str, Enum):
    CHANNEL_DISABLED = "Channel is disabled"
    PAIRING_REQUIRED = "Pairing required"
    NOT_ALLOWLISTED = "Not in allowlist"
    UNKNOWN_POLICY = "Unknown policy"


@dataclass(frozen=True)
class AccessDecision:
    """访问判断结果。拒绝是正常的返回值，不是异常。"""

    allowed: bool
    reason: DenyReason | None = None

    @property
    def pairing_required(self) -> bool:
        return self.reason is DenyReason.PAIRING_REQUIRED


ALLOWED = AccessDecision(allowed=True)


@dataclass
class AllowlistEntry:
    chat_key: str
    added_at: datetime
    added_by: str | None = None


def matches_allow_from(user: UserInfo, allow_from: list[str]) -> bool:
    """
    检查用户是否在配置的 allow_from 列表中。

    ID 精确匹配；用户名不区分大小写，允许带前导 @。
    """
    username = (user.username or "").lstrip("@").lower()
    for allowed in allow_from:
        allowed = str(allowed).strip()
        if not allowed:
            continue
        if allowed == user.id:
            return True
        if username and allowed.lstrip("@").lower() == username:
            return True
    return False


class AllowlistGate:
    """白名单门禁 - 访问判断与运维接口（add / remove / check / list）。"""

    def __init__(self, db: BridgeDatabase):
        self.db = db

    def decide(
        self,
        chat_key: str,
        user: UserInfo,
        policy: str,
        allow_from: list[str] | None = None,
        enabled: bool = True,
    ) -> AccessDecision:
        """
        判断 (对话, 用户) 是否可以继续。

        参数:
            chat_key: 对话的 chat key（不含会话名）
            user: 发送者身份
            policy: 私聊策略（pairing / allowlist / open）
            allow_from: 配置中的用户白名单
            enabled: 渠道是否启用

        返回:
            AccessDecision
        """
        if not enabled:
            return AccessDecision(False, DenyReason.CHANNEL_DISABLED)

        if policy == "open":
            return ALLOWED

        if policy not in ("pairing", "allowlist"):
            logger.warning(f"Unknown dm policy '{policy}' for {chat_key}, denying")
            return AccessDecision(False, DenyReason.UNKNOWN_POLICY)

        if self.db.is_allowed(chat_key) or matches_allow_from(user, allow_from or []):
            return ALLOWED

        if policy == "pairing":
            return AccessDecision(False, DenyReason.PAIRING_REQUIRED)
        return AccessDecision(False, DenyReason.NOT_ALLOWLISTED)

    def add(self, chat_key: str, added_by: str | None = None) -> bool:
        """手动加入白名单；chat key 格式非法时抛出 MalformedKeyError。已存在时返回 False。"""
        decode_chat_key(chat_key)
        added = self.db.add_to_allowlist(chat_key, added_by)
        if added:
            logger.info(f"Allowlisted {chat_key} (by {added_by or 'operator'})")
        return added

    def remove(self, chat_key: str) -> bool:
        """
        移出白名单。

        该对话的会话不会被自动删除；需要时调用 SessionManager.reset_chat()。
        """
        removed = self.db.remove_from_allowlist(chat_key)
        if removed:
            logger.info(f"Removed {chat_key} from allowlist")
        return removed

    def check(self, chat_key: str) -> bool:
        return self.db.is_allowed(chat_key)

    def get(self, chat_key: str) -> AllowlistEntry | None:
        row = self.db.get_allowlist_entry(chat_key)
        if row is None:
            return None
        return AllowlistEntry(row["chat_key"], datetime.fromisoformat(row["added_at"]), row["added_by"])

    def list(self) -> list[AllowlistEntry]:
        return [
            AllowlistEntry(r["chat_key"], datetime.fromisoformat(r["added_at"]), r["added_by"])
            for r in self.db.list_allowlist()
        ]
