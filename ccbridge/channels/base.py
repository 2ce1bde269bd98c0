"""
渠道基类模块 - 定义所有消息渠道适配器的统一接口。

具体平台的协议实现（Telegram Bot API、Discord Gateway 等）不在本包内，
适配器只需继承 BaseChannel 并实现三个抽象方法：
- start(): 连接平台并开始监听（长期运行的异步任务）
- stop(): 断开连接，释放资源
- send(): 把 OutboundMessage 发送到平台

每个渠道实例对应一个机器人身份（BotEntry）。收到平台消息后调用 _handle_message()，
它负责把消息标准化为 InboundMessage 并发布到总线；访问控制由 BridgeLoop 统一处理。
"""

from abc import ABC, abstractmethod
from typing import Any

from ccbridge.bus.events import InboundMessage, OutboundMessage, UserInfo
from ccbridge.bus.queue import MessageBus
from ccbridge.config.schema import BotEntry, ChannelConfig


class BaseChannel(ABC):
    """
    消息渠道抽象基类。

    属性:
        name: 平台名（如 "telegram"），同时也是 chat key 的第一段
        config: 渠道级配置
        bot: 本实例对应的机器人身份
        bus: 消息总线
    """

    name: str = "base"

    # 平台单条消息的最大长度，BridgeLoop 据此切分长回复
    max_message_length: int = 4000

    def __init__(self, config: ChannelConfig, bus: MessageBus, bot: BotEntry | None = None):
        self.config = config
        self.bus = bus
        self.bot = bot or BotEntry()
        self._running = False

    @property
    def bot_id(self) -> str | None:
        return self.bot.id

    @abstractmethod
    async def start(self) -> None:
        """连接平台并持续监听消息，收到消息后调用 _handle_message()。"""

    @abstractmethod
    async def stop(self) -> None:
        """断开连接并取消后台任务。"""

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        发送出站消息（尽力投递，不保证送达）。

        参数:
            msg: 出站消息，chat_id / is_group 决定目标对话
        """

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        user: UserInfo | None = None,
        is_group: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        标准化平台消息并发布到总线。

        参数:
            sender_id: 发送者 ID
            chat_id: 对话 ID（私聊为对方 ID，群组为群组 ID）
            content: 消息文本
            user: 发送者身份，None 时只用 sender_id 构造
            is_group: 是否来自群组
            metadata: 平台特有数据（如 message_id）
        """
        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            user=user or UserInfo(id=str(sender_id), channel=self.name),
            bot_id=self.bot_id,
            is_group=is_group,
            metadata=metadata or {},
        )
        await self.bus.publish_inbound(msg)

    @property
    def is_running(self) -> bool:
        return self._running
