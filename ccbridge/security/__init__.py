"""
安全模块 - 访问控制。

- allowlist.py：AllowlistGate，根据私聊策略与白名单做出无副作用的放行 / 拒绝判断
- pairing.py：PairingLedger，一次性配对码的签发、批准、拒绝与过期回收

消息流向：
  入站消息 → AllowlistGate.decide() → 拒绝且策略为 pairing → PairingLedger.issue() → 回复配对码
"""

from ccbridge.security.allowlist import AccessDecision, AllowlistEntry, AllowlistGate, DenyReason
from ccbridge.security.pairing import PairingApproval, PairingLedger, PairingRequest

__all__ = [
    "AccessDecision",
    "AllowlistEntry",
    "AllowlistGate",
    "DenyReason",
    "PairingApproval",
    "PairingLedger",
    "PairingRequest",
]
