"""
消息总线模块 - 渠道适配器与桥接核心之间的解耦通信。

消息流向：
  用户消息 → 渠道(Channel) → InboundMessage → 消息总线 → BridgeLoop
  回复     → OutboundMessage → 消息总线 → 渠道(Channel) → 用户
"""

from ccbridge.bus.events import InboundMessage, OutboundMessage, UserInfo
from ccbridge.bus.queue import MessageBus

__all__ = ["InboundMessage", "MessageBus", "OutboundMessage", "UserInfo"]
