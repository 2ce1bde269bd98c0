"""
消息事件类型定义模块 - 定义消息总线中传输的数据结构。

- UserInfo：发送者身份（平台用户 ID、用户名、展示名）
- InboundMessage：入站消息（从渠道到桥接核心）
- OutboundMessage：出站消息（从桥接核心到渠道）

渠道与核心之间只通过这三个结构通信。入站消息的 chat_key 属性按
chat key 语法把平台、机器人身份、群组标记和对话 ID 组合成对话的唯一标识。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ccbridge.routing.chatkey import ChatKey


@dataclass
class UserInfo:
    """
    发送者身份。

    属性:
        id: 平台内的用户 ID
        channel: 平台名
        username: 用户名（如 Telegram 的 @handle，不含 @）
        display_name: 展示名
    """

    id: str
    channel: str
    username: str | None = None
    display_name: str | None = None

    @property
    def label(self) -> str:
        """用于展示的名字：展示名 > 用户名 > ID。"""
        return self.display_name or self.username or self.id


@dataclass
class InboundMessage:
    """
    入站消息 - 从聊天渠道接收到的用户消息。

    属性:
        channel: 平台名（telegram / discord）
        sender_id: 发送者 ID
        chat_id: 对话 ID（私聊时为对方 ID，群组时为群组 / 频道 ID）
        content: 消息文本
        user: 发送者身份
        bot_id: 接收消息的机器人标识（多机器人部署），单机器人时为 None
        is_group: 是否来自群组 / 频道
        timestamp: 接收时间
        metadata: 渠道特有的附加数据（如 message_id）
    """

    channel: str
    sender_id: str
    chat_id: str
    content: str
    user: UserInfo
    bot_id: str | None = None
    is_group: bool = False
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def group_id(self) -> str | None:
        return self.chat_id if self.is_group else None

    @property
    def key(self) -> ChatKey:
        return ChatKey(self.channel, self.chat_id, self.bot_id, self.is_group)

    @property
    def chat_key(self) -> str:
        """对话的 chat key（不含会话名），如 "telegram:group:555"。"""
        return self.key.encode()


@dataclass
class OutboundMessage:
    """
    出站消息 - 要发送到聊天渠道的回复。

    属性:
        channel: 目标平台
        chat_id: 目标对话 ID
        content: 回复文本
        bot_id: 通过哪个机器人身份发送（多机器人部署）
        is_group: 目标是否为群组
        reply_to: 可选的引用消息 ID
        metadata: 渠道特有的附加数据
    """

    channel: str
    chat_id: str
    content: str
    bot_id: str | None = None
    is_group: bool = False
    reply_to: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def chat_key(self) -> str:
        return ChatKey(self.channel, self.chat_id, self.bot_id, self.is_group).encode()

    @classmethod
    def reply(cls, msg: InboundMessage, content: str, **kwargs: Any) -> "OutboundMessage":
        """构造对入站消息的回复。"""
        return cls(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=content,
            bot_id=msg.bot_id,
            is_group=msg.is_group,
            **kwargs,
        )
