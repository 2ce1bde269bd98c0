"""
配对码管理模块 - 让新用户通过一次性配对码自助接入。

【状态机】
  待批准（已签发，未过期）
    → 已批准（终态：chat key 加入白名单，请求删除）
    → 已拒绝（终态：请求删除）
    → 已过期（终态：懒回收，签发新码或批准时检测到即删除）

配对码为 6 位大写十六进制字符，来自 secrets 模块的密码学安全随机源，
比较时不区分大小写。配对码是一次性的：批准或拒绝之后即被删除，无法重放。
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger

from ccbridge.bus.events import UserInfo
from ccbridge.db.database import BridgeDatabase, to_iso
from ccbridge.errors import PairingExpiredError, PairingNotFoundError

CODE_BYTES = 3  # 3 字节 → 6 个十六进制字符
DEFAULT_TTL = timedelta(hours=1)


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass
class PairingRequest:
    """
    配对请求。

    属性:
        code: 配对码
        chat_key: 申请接入的对话
        user: 申请人身份
        created_at / expires_at: 签发时间与过期时间（UTC）
    """

    code: str
    chat_key: str
    user: UserInfo
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @classmethod
    def from_row(cls, row: dict) -> "PairingRequest":
        return cls(
            code=row["code"],
            chat_key=row["chat_key"],
            user=UserInfo(
                id=row["user_id"],
                channel=row["channel"],
                username=row["username"],
                display_name=row["display_name"],
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )


@dataclass
class PairingApproval:
    """批准结果：被加入白名单的对话与申请人。"""

    code: str
    chat_key: str
    user: UserInfo


class PairingLedger:
    """
    配对请求台账。

    clock 可注入，便于测试过期行为；默认使用当前 UTC 时间。
    """

    def __init__(self, db: BridgeDatabase, clock: Callable[[], datetime] | None = None):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        now = self._clock()
        return now if now.tzinfo else now.replace(tzinfo=timezone.utc)

    def _new_code(self) -> str:
        while True:
            code = secrets.token_hex(CODE_BYTES).upper()
            if self.db.get_pairing_request(code) is None:
                return code

    def issue(self, chat_key: str, user: UserInfo, ttl: timedelta = DEFAULT_TTL) -> str:
        """
        为对话签发配对码。

        签发前先回收所有过期请求；同一对话已有未过期的请求时直接复用该配对码。

        返回:
            6 位大写配对码
        """
        now = self._now()
        now_iso = to_iso(now)
        reaped = self.db.delete_expired_pairing_requests(now_iso)
        if reaped:
            logger.debug(f"Reaped {reaped} expired pairing request(s)")

        pending = self.db.find_pending_pairing_request(chat_key, now_iso)
        if pending is not None:
            return pending["code"]

        code = self._new_code()
        self.db.insert_pairing_request(
            code=code,
            chat_key=chat_key,
            user_id=user.id,
            username=user.username,
            display_name=user.display_name,
            channel=user.channel,
            created_at=now_iso,
            expires_at=to_iso(now + ttl),
        )
        logger.info(f"Issued pairing code {code} for {chat_key} ({user.label})")
        return code

    def approve(self, code: str) -> PairingApproval:
        """
        批准配对码，把对应对话加入白名单。

        异常:
            PairingNotFoundError: 配对码不存在或已被使用
            PairingExpiredError: 配对码已过期（同时删除该请求）
        """
        code = normalize_code(code)
        row = self.db.get_pairing_request(code)
        if row is None:
            raise PairingNotFoundError(code)

        request = PairingRequest.from_row(row)
        now = self._now()
        if request.is_expired(now):
            self.db.delete_pairing_request(code)
            raise PairingExpiredError(code)

        if not self.db.promote_pairing_request(code, f"pairing:{code}", to_iso(now)):
            raise PairingNotFoundError(code)

        logger.info(f"Approved pairing code {code}: {request.chat_key} is now allowlisted")
        return PairingApproval(code=code, chat_key=request.chat_key, user=request.user)

    def reject(self, code: str) -> bool:
        """拒绝（删除）配对请求；配对码不存在时返回 False。"""
        code = normalize_code(code)
        rejected = self.db.delete_pairing_request(code)
        if rejected:
            logger.info(f"Rejected pairing code {code}")
        return rejected

    def get_request(self, code: str) -> PairingRequest | None:
        """查看未过期的配对请求（不批准）。"""
        row = self.db.get_pairing_request(normalize_code(code))
        if row is None:
            return None
        request = PairingRequest.from_row(row)
        return None if request.is_expired(self._now()) else request

    def list_pending(self) -> list[PairingRequest]:
        """列出所有未过期的配对请求，最新的在前。"""
        rows = self.db.list_pending_pairing_requests(to_iso(self._now()))
        return [PairingRequest.from_row(r) for r in rows]

    def cleanup(self) -> int:
        """回收过期请求，返回删除的条数。"""
        return self.db.delete_expired_pairing_requests(to_iso(self._now()))
