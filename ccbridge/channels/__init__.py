"""
渠道模块 - 聊天平台适配器的接口与生命周期管理。

- base.py：BaseChannel 抽象基类（适配器发送端口）
- manager.py：ChannelManager，按 (平台, 机器人) 注册适配器并分发出站消息
"""

from ccbridge.channels.base import BaseChannel
from ccbridge.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
