"""
异步消息队列模块 - 消息总线的核心实现。

基于 asyncio.Queue 的生产者-消费者模式：

入站流程（用户 → 核心）：
  渠道适配器 → publish_inbound() → inbound 队列 → consume_inbound() → BridgeLoop

出站流程（核心 → 用户）：
  BridgeLoop → publish_outbound() → outbound 队列 → consume_outbound() → ChannelManager
"""

import asyncio

from ccbridge.bus.events import InboundMessage, OutboundMessage


class MessageBus:
    """
    异步消息总线 - 解耦聊天渠道与桥接核心。

    属性:
        inbound: 入站消息队列（渠道 → 核心）
        outbound: 出站消息队列（核心 → 渠道）
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()

    async def publish_inbound(self, msg: InboundMessage) -> None:
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """取出下一条入站消息，队列为空时等待。"""
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        return await self.outbound.get()
