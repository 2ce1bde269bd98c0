"""
桥接组装模块 - 进程启动时构造全部协作对象并注入依赖。

组装顺序：
1. BridgeDatabase 只构造一次，注入给 SessionStore / PairingLedger / AllowlistGate
2. Router 与执行引擎交给 SessionManager，内置命令注册到 CommandRegistry
3. BridgeLoop 消费入站消息，ChannelManager 负责出站分发
4. 每个启用的渠道、每个机器人身份各创建一个适配器实例

具体平台的适配器不在本包内，调用方通过 adapters 传入 {平台名: 工厂函数}。
"""

import asyncio
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from ccbridge.bridge.loop import BridgeLoop
from ccbridge.bridge.transcript import TranscriptLogger
from ccbridge.bus.queue import MessageBus
from ccbridge.channels.base import BaseChannel
from ccbridge.channels.manager import ChannelManager
from ccbridge.commands.handlers import register_builtin_commands
from ccbridge.commands.registry import CommandRegistry
from ccbridge.config.schema import BotEntry, ChannelConfig, Config
from ccbridge.db.database import BridgeDatabase
from ccbridge.providers.base import AgentRunner
from ccbridge.routing.router import Router
from ccbridge.security.allowlist import AllowlistGate
from ccbridge.security.pairing import PairingLedger
from ccbridge.session.manager import SessionManager
from ccbridge.session.store import SessionStore

ChannelFactory = Callable[[ChannelConfig, MessageBus, BotEntry], BaseChannel]

PLATFORMS = ("telegram", "discord")


@dataclass
class Bridge:
    """组装好的桥接服务。"""

    config: Config
    db: BridgeDatabase
    bus: MessageBus
    sessions: SessionManager
    pairing: PairingLedger
    gate: AllowlistGate
    commands: CommandRegistry
    transcript: TranscriptLogger
    loop: BridgeLoop
    channels: ChannelManager

    async def run(self) -> None:
        """运行主循环、出站分发器与所有渠道，直到 stop() 或任务被取消。"""
        await asyncio.gather(self.loop.run(), self.channels.start_all())

    async def stop(self) -> None:
        """停止接收消息，等待进行中的轮次结束后释放所有资源。"""
        self.loop.stop()
        await self.loop.drain()
        await self.channels.stop_all()
        await self.sessions.runner.aclose()
        self.transcript.close()
        self.db.close()
        logger.info("Bridge stopped")


def build_bridge(
    config: Config,
    runner: AgentRunner | None = None,
    adapters: dict[str, ChannelFactory] | None = None,
    db: BridgeDatabase | None = None,
) -> Bridge:
    """
    按配置组装桥接服务。

    参数:
        config: 全局配置
        runner: 执行引擎，None 时使用 ClaudeAgentRunner
        adapters: {平台名: 适配器工厂}，工厂参数为 (渠道配置, 消息总线, 机器人身份)
        db: 已打开的数据库，None 时按 config.database_path 打开

    返回:
        Bridge 实例（尚未启动）
    """
    if runner is None:
        from ccbridge.providers.claude_runner import ClaudeAgentRunner
        runner = ClaudeAgentRunner()
    db = db or BridgeDatabase(config.db_path)
    adapters = adapters or {}

    bus = MessageBus()
    sessions = SessionManager(Router.from_config(config), SessionStore(db), runner)
    pairing = PairingLedger(db)
    gate = AllowlistGate(db)
    commands = CommandRegistry()
    register_builtin_commands(commands, sessions)

    transcript = TranscriptLogger(config.logging.transcript)
    if config.logging.transcript.enabled:
        transcript.cleanup()

    reaped = pairing.cleanup()
    if reaped:
        logger.info(f"Removed {reaped} expired pairing request(s)")

    loop = BridgeLoop(
        bus=bus,
        config=config,
        sessions=sessions,
        pairing=pairing,
        gate=gate,
        commands=commands,
        transcript=transcript,
    )

    channels = ChannelManager(bus)
    for platform in PLATFORMS:
        channel_config = config.channels.get(platform)
        if channel_config is None or not channel_config.enabled:
            continue
        factory = adapters.get(platform)
        if factory is None:
            logger.warning(f"Channel {platform} is enabled but no adapter is installed for it")
            continue
        for bot in channel_config.bot_entries():
            channels.register(factory(channel_config, bus, bot))

    return Bridge(
        config=config,
        db=db,
        bus=bus,
        sessions=sessions,
        pairing=pairing,
        gate=gate,
        commands=commands,
        transcript=transcript,
        loop=loop,
        channels=channels,
    )
