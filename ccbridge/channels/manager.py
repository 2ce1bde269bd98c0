"""
渠道管理器模块 - 管理渠道适配器的生命周期与出站消息路由。

一个平台可以有多个机器人身份，因此渠道实例以 (平台名, botId) 为键注册，
出站消息按 (msg.channel, msg.bot_id) 找到对应的实例发送。

具体平台的适配器由调用方构造后通过 register() 注册。
"""

import asyncio
from dataclasses import replace

from loguru import logger

from ccbridge.bus.events import OutboundMessage
from ccbridge.bus.queue import MessageBus
from ccbridge.channels.base import BaseChannel
from ccbridge.utils.helpers import chunk_text

ChannelKey = tuple[str, str | None]


class ChannelManager:
    """
    渠道管理器。

    属性:
        bus: 消息总线
        channels: 已注册的渠道 {(平台名, botId): 渠道实例}
    """

    def __init__(self, bus: MessageBus):
        self.bus = bus
        self.channels: dict[ChannelKey, BaseChannel] = {}
        self._dispatch_task: asyncio.Task | None = None

    def register(self, channel: BaseChannel) -> None:
        key = (channel.name, channel.bot_id)
        if key in self.channels:
            raise ValueError(f"Channel already registered: {channel.name} (bot {channel.bot_id or '-'})")
        self.channels[key] = channel
        logger.info(f"Registered {channel.name} channel (bot {channel.bot_id or '-'})")

    def get_channel(self, platform: str, bot_id: str | None = None) -> BaseChannel | None:
        return self.channels.get((platform, bot_id))

    async def _start_channel(self, key: ChannelKey, channel: BaseChannel) -> None:
        try:
            await channel.start()
        except Exception as e:
            logger.error(f"Failed to start channel {key[0]} (bot {key[1] or '-'}): {e}")

    async def start_all(self) -> None:
        """启动出站分发器与所有渠道；渠道的 start() 是长期运行的任务。"""
        if not self.channels:
            logger.warning("No channels registered")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_outbound())
        tasks = [asyncio.create_task(self._start_channel(k, c)) for k, c in self.channels.items()]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def stop_all(self) -> None:
        logger.info("Stopping all channels...")
        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass

        for (platform, bot_id), channel in self.channels.items():
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"Error stopping {platform} (bot {bot_id or '-'}): {e}")

    async def deliver(self, msg: OutboundMessage) -> bool:
        """
        把一条出站消息交给对应的渠道，超过平台长度上限时分段发送。

        找不到渠道或发送失败时返回 False。
        """
        channel = self.get_channel(msg.channel, msg.bot_id)
        if channel is None:
            logger.warning(f"Unknown channel for {msg.chat_key}")
            return False
        try:
            for part in chunk_text(msg.content, channel.max_message_length) or [""]:
                await channel.send(replace(msg, content=part))
        except Exception as e:
            logger.error(f"Error sending to {msg.chat_key}: {e}")
            return False
        return True

    async def _dispatch_outbound(self) -> None:
        logger.info("Outbound dispatcher started")
        while True:
            try:
                msg = await asyncio.wait_for(self.bus.consume_outbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            await self.deliver(msg)

    def get_status(self) -> dict[str, dict]:
        return {
            f"{platform}:{bot_id}" if bot_id else platform: {"running": channel.is_running}
            for (platform, bot_id), channel in self.channels.items()
        }
