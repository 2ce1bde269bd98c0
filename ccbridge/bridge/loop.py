"""
桥接主循环模块 - 把入站消息串起来：访问控制 → 命令 / 对话 → 回复。

处理流程（每条入站消息）：
1. 按机器人级覆盖 → 渠道默认值得到生效的私聊策略与 allow_from
2. AllowlistGate 判断；pairing 策略下被拒绝时签发配对码并回复操作指引
3. 以 "/" 开头的消息交给 CommandRegistry，未知命令回复提示
4. 其他消息交给 SessionManager 流式执行，文本累积到一定长度或间隔后分段发出

不同 chat key 的消息在各自的任务中并发处理；同一 chat key 通过 asyncio.Lock 串行，
保证一个对话同时只有一轮进行中的执行。
"""

import asyncio
import time

from loguru import logger

from ccbridge.bridge.transcript import TranscriptLogger
from ccbridge.bus.events import InboundMessage, OutboundMessage
from ccbridge.bus.queue import MessageBus
from ccbridge.commands.registry import CommandContext, CommandRegistry
from ccbridge.config.schema import Config
from ccbridge.errors import NoAgentConfiguredError
from ccbridge.security.allowlist import AccessDecision, AllowlistGate, DenyReason
from ccbridge.security.pairing import PairingLedger
from ccbridge.session.manager import SessionManager

FLUSH_CHARS = 3000
FLUSH_INTERVAL = 2.0


def pairing_instructions(code: str) -> str:
    return (
        "🔐 Pairing required\n\n"
        f"Your code: {code}\n\n"
        f"Run: ccbridge pairing approve {code}\n\n"
        "Code expires in 1 hour."
    )


class BridgeLoop:
    """
    桥接主循环。

    参数:
        bus: 消息总线
        config: 全局配置（读取渠道策略与机器人绑定）
        sessions: 会话管理器
        pairing: 配对码台账
        gate: 白名单门禁
        commands: 聊天命令注册表
        transcript: 可选的聊天流水记录器
    """

    def __init__(
        self,
        bus: MessageBus,
        config: Config,
        sessions: SessionManager,
        pairing: PairingLedger,
        gate: AllowlistGate,
        commands: CommandRegistry,
        transcript: TranscriptLogger | None = None,
        flush_chars: int = FLUSH_CHARS,
        flush_interval: float = FLUSH_INTERVAL,
    ):
        self.bus = bus
        self.config = config
        self.sessions = sessions
        self.pairing = pairing
        self.gate = gate
        self.commands = commands
        self.transcript = transcript
        self.flush_chars = flush_chars
        self.flush_interval = flush_interval
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    async def run(self) -> None:
        """持续消费入站消息，每条消息一个任务。"""
        self._running = True
        logger.info("Bridge loop started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            task = asyncio.create_task(self._handle(msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def stop(self) -> None:
        self._running = False
        logger.info("Bridge loop stopping")

    async def drain(self) -> None:
        """等待所有进行中的消息处理完成。"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _handle(self, msg: InboundMessage) -> None:
        key = f"{msg.channel}|{msg.bot_id}|{msg.is_group}|{msg.chat_id}"
        lock = self._acquire_lock(key)
        try:
            async with lock:
                try:
                    await self.process(msg)
                except NoAgentConfiguredError as e:
                    logger.error(f"No agent for {msg.channel}:{msg.chat_id}: {e}")
                    await self._reply(msg, "No agent is configured for this chat.")
                except Exception as e:
                    logger.exception(f"Error processing message from {msg.channel}:{msg.chat_id}: {e}")
                    await self._reply(msg, f"Sorry, I encountered an error: {e}")
        finally:
            self._release_lock(key)

    def _acquire_lock(self, key: str) -> asyncio.Lock:
        """取得对话的锁并登记一个使用者（持有或等待中）。"""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _release_lock(self, key: str) -> None:
        """注销一个使用者，最后一个离开时删除锁。"""
        users = self._lock_users.pop(key) - 1
        if users:
            self._lock_users[key] = users
        else:
            del self._locks[key]

    # ── 单条消息 ──────────────────────────────────────────────────

    def check_access(self, msg: InboundMessage) -> AccessDecision:
        """按生效策略判断消息能否继续。未配置的平台视为已关闭。"""
        channel = self.config.channels.get(msg.channel)
        if channel is None:
            return AccessDecision(False, DenyReason.CHANNEL_DISABLED)
        policy, allow_from = channel.effective_access(channel.get_bot(msg.bot_id))
        return self.gate.decide(msg.chat_key, msg.user, policy, allow_from, enabled=channel.enabled)

    def bound_agent_id(self, msg: InboundMessage) -> str | None:
        """机器人级直接绑定的 Agent；没有时返回 None，交给 Router。"""
        channel = self.config.channels.get(msg.channel)
        if channel is None:
            return None
        bot = channel.get_bot(msg.bot_id)
        return bot.agent_id if bot else None

    async def process(self, msg: InboundMessage) -> None:
        """
        处理一条入站消息（调用方负责同一 chat key 的串行化）。

        异常:
            NoAgentConfiguredError: 路由失败
            MalformedKeyError: 消息字段无法组成合法的 chat key
        """
        chat_key = msg.chat_key
        decision = self.check_access(msg)
        if not decision.allowed:
            if decision.pairing_required:
                code = self.pairing.issue(chat_key, msg.user)
                await self._reply(msg, pairing_instructions(code))
            else:
                logger.info(f"Denied {chat_key} ({msg.user.label}): {decision.reason.value}")
                await self._reply(msg, f"Access denied: {decision.reason.value}")
            return

        agent_id = self.bound_agent_id(msg)
        parsed = CommandRegistry.parse(msg.content)
        if parsed is not None:
            self._log(chat_key, "incoming", "command", f"/{parsed.command} {parsed.raw_args}".strip(), agent_id)
            ctx = CommandContext(
                command=parsed.command,
                args=parsed.args,
                raw_args=parsed.raw_args,
                message=msg,
                reply=lambda text: self._reply(msg, text),
                agent_id=agent_id,
            )
            if not await self.commands.dispatch(ctx):
                await self._reply(msg, f"Unknown command: /{parsed.command}\nUse /help for available commands.")
            return

        self._log(chat_key, "incoming", "text", msg.content, agent_id)
        await self._stream(msg, agent_id)

    async def _stream(self, msg: InboundMessage, agent_id: str | None) -> None:
        chat_key = msg.chat_key
        pending: list[str] = []
        pending_len = 0
        last_flush = time.monotonic()

        async def flush() -> None:
            nonlocal pending_len, last_flush
            if not pending:
                return
            text = "".join(pending)
            pending.clear()
            pending_len = 0
            last_flush = time.monotonic()
            await self._reply(msg, text)
            self._log(chat_key, "outgoing", "text", text, agent_id)

        async for chunk in self.sessions.stream_turn(msg, agent_id=agent_id):
            if chunk.kind == "text":
                pending.append(chunk.text)
                pending_len += len(chunk.text)
                if pending_len > self.flush_chars or time.monotonic() - last_flush > self.flush_interval:
                    await flush()
            elif chunk.kind == "tool_use":
                self._log(chat_key, "outgoing", "tool_use", chunk.tool_name or "unknown", agent_id)
            elif chunk.kind == "error":
                await flush()
                self._log(chat_key, "outgoing", "error", chunk.error or "", agent_id)
                await self._reply(msg, f"Error: {chunk.error}")
                return

        await flush()

    # ── 工具方法 ──────────────────────────────────────────────────

    async def _reply(self, msg: InboundMessage, content: str) -> None:
        await self.bus.publish_outbound(OutboundMessage.reply(msg, content))

    def _log(self, chat_key: str, direction: str, kind: str, content: str, agent_id: str | None) -> None:
        if self.transcript is not None:
            self.transcript.log(chat_key, direction, kind, content, agent_id=agent_id)
