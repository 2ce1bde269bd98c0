"""
会话管理器模块 - 编排 Router、SessionStore 与 Agent 执行端口。

stream_turn() 的处理流程：
1. 解析 Agent：显式指定的 agent_id 优先，否则交给 Router
2. 在 SessionStore 中查找或创建会话行（新行带占位句柄）
3. 只有真实句柄才作为恢复令牌传给执行引擎
4. 原样转发 text / tool_use 事件；result 事件只提取会话句柄，不转发文本
5. 成功结束后通过 record_handle 持久化真实句柄，并发出 done 块
6. 执行出错时发出一个 error 块后结束，不修改任何持久化状态

同一个 chat key 上同时只能有一轮进行中的对话，串行化由调用方（BridgeLoop）负责。
"""

from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Literal

from loguru import logger

from ccbridge.bus.events import InboundMessage
from ccbridge.config.schema import AgentProfile
from ccbridge.errors import ExecutionError, NoAgentConfiguredError
from ccbridge.providers.base import AgentRunner, TurnOptions
from ccbridge.routing.chatkey import DEFAULT_SESSION_NAME, GROUP_MARKERS, decode_chat_key
from ccbridge.routing.router import Router
from ccbridge.session.store import Session, SessionStore


@dataclass
class StreamChunk:
    """
    流式响应块。

    属性:
        kind: text=文本片段, tool_use=工具调用, error=执行失败, done=本轮结束
        text: 文本内容（text 块）
        tool_name: 工具名（tool_use 块）
        error: 错误信息（error 块）
    """

    kind: Literal["text", "tool_use", "error", "done"]
    text: str = ""
    tool_name: str | None = None
    error: str | None = None


def _validate_session_name(name: str) -> str:
    name = name.strip()
    # 群组标记不能作为会话名，否则 chat key 无法解码
    if not name or ":" in name or any(c.isspace() for c in name) or name in GROUP_MARKERS:
        raise ValueError(f"Invalid session name: {name!r}")
    return name


class SessionManager:
    """
    会话管理器。

    内存缓存 _handles 记录 (chat_key, session_name) → 最近一次写入的真实句柄，
    只用于展示，恢复判断始终以数据库行为准；删除 / 重置时同步清理。
    """

    def __init__(self, router: Router, store: SessionStore, runner: AgentRunner):
        self.router = router
        self.store = store
        self.runner = runner
        self._handles: dict[tuple[str, str], str] = {}

    # ── Agent 解析 ────────────────────────────────────────────────

    def resolve_agent(self, message: InboundMessage, agent_id: str | None = None) -> AgentProfile:
        """
        解析本条消息应使用的 Agent。

        异常:
            NoAgentConfiguredError: 显式指定的 Agent 不存在，或路由失败
        """
        if agent_id:
            agent = self.router.get_agent(agent_id)
            if agent is None:
                raise NoAgentConfiguredError(f"Unknown agent: {agent_id}")
            return agent
        return self.router.route(message.channel, message.sender_id, message.group_id)

    def _agent_for_chat_key(self, chat_key: str, agent_id: str | None = None) -> AgentProfile:
        if agent_id:
            agent = self.router.get_agent(agent_id)
            if agent is None:
                raise NoAgentConfiguredError(f"Unknown agent: {agent_id}")
            return agent
        key = decode_chat_key(chat_key)
        if key.is_group:
            return self.router.route(key.platform, "", key.peer_id)
        return self.router.route(key.platform, key.peer_id)

    @staticmethod
    def _system_prompt(agent: AgentProfile, message: InboundMessage) -> str:
        parts = []
        if agent.system_prompt:
            parts.append(agent.system_prompt)
        parts.append(f"User info: {message.user.label} via {message.channel}")
        return "\n\n".join(parts)

    # ── 对话 ──────────────────────────────────────────────────────

    async def stream_turn(
        self,
        message: InboundMessage,
        agent_id: str | None = None,
        session_name: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        执行一轮对话并流式产出响应块。

        参数:
            message: 入站消息
            agent_id: 显式指定的 Agent（如机器人级直接绑定），None 时交给 Router
            session_name: 目标会话名，None 时使用该对话的活跃会话

        返回:
            StreamChunk 异步迭代器；消费方提前停止迭代时执行引擎的迭代器会被关闭

        异常:
            NoAgentConfiguredError: Agent 解析失败（在产出任何块之前抛出）
            sqlite3.Error: 持久化失败，不做掩盖
        """
        chat_key = message.chat_key
        name = session_name or self.store.get_active_session_name(chat_key)
        agent = self.resolve_agent(message, agent_id)
        workspace = str(agent.workspace_path)

        session = self.store.get_or_create(chat_key, name, agent.id, workspace)
        resume = session.handle if session.resumable else None
        options = TurnOptions.from_profile(agent, resume_handle=resume)
        options.system_prompt = self._system_prompt(agent, message)

        logger.info(
            f"Turn for {chat_key} [{name}] with agent '{agent.id}' "
            f"({'resume ' + resume if resume else 'new session'})"
        )

        handle: str | None = None
        try:
            async with aclosing(self.runner.run_turn(message.content, options)) as events:
                async for event in events:
                    if event.kind == "text":
                        if event.text:
                            yield StreamChunk(kind="text", text=event.text)
                    elif event.kind == "tool_use":
                        yield StreamChunk(kind="tool_use", tool_name=event.tool_name)
                    elif event.kind == "result":
                        if event.is_error:
                            raise ExecutionError(event.text or "Agent turn failed")
                        handle = event.session_handle
        except Exception as e:
            logger.error(f"Agent turn failed for {chat_key} [{name}]: {e}")
            yield StreamChunk(kind="error", error=str(e) or type(e).__name__)
            return

        if handle:
            self.store.record_handle(chat_key, name, handle, agent.id, workspace)
            self._handles[(chat_key, name)] = handle
        else:
            logger.warning(f"Agent turn for {chat_key} [{name}] finished without a session handle")
            self.store.touch(chat_key, name)

        yield StreamChunk(kind="done")

    async def collect_response(
        self,
        message: InboundMessage,
        agent_id: str | None = None,
        session_name: str | None = None,
    ) -> str:
        """非流式执行一轮对话，返回拼接后的完整文本；执行失败时抛出 ExecutionError。"""
        parts: list[str] = []
        async for chunk in self.stream_turn(message, agent_id=agent_id, session_name=session_name):
            if chunk.kind == "text":
                parts.append(chunk.text)
            elif chunk.kind == "error":
                raise ExecutionError(chunk.error or "Agent turn failed")
        return "".join(parts)

    # ── 会话管理 ──────────────────────────────────────────────────

    def create_named_session(self, chat_key: str, name: str, agent_id: str | None = None) -> Session:
        """
        显式创建一个命名会话并切换过去。

        异常:
            ValueError: 会话名非法或同名会话已存在
            NoAgentConfiguredError: 无法确定 Agent
        """
        name = _validate_session_name(name)
        if self.store.get(chat_key, name) is not None:
            raise ValueError(f'Session "{name}" already exists')
        agent = self._agent_for_chat_key(chat_key, agent_id)
        session = self.store.get_or_create(chat_key, name, agent.id, str(agent.workspace_path))
        self.store.set_active_session_name(chat_key, name)
        return session

    def switch_session(self, chat_key: str, name: str) -> bool:
        """切换活跃会话；目标会话不存在时返回 False，不会隐式创建。"""
        if self.store.get(chat_key, name) is None:
            return False
        self.store.set_active_session_name(chat_key, name)
        return True

    def delete_session(self, chat_key: str, name: str = DEFAULT_SESSION_NAME) -> bool:
        """删除一个会话；如果它是活跃会话，活跃指针回到 "main"。"""
        self._handles.pop((chat_key, name), None)
        deleted = self.store.delete(chat_key, name)
        if self.store.get_active_session_name(chat_key) == name and name != DEFAULT_SESSION_NAME:
            self.store.set_active_session_name(chat_key, DEFAULT_SESSION_NAME)
        return deleted

    def reset_chat(self, chat_key: str) -> int:
        """删除对话下的全部会话并清理缓存，返回删除的会话数。"""
        names = self.store.delete_all(chat_key)
        for cached_key in [k for k in self._handles if k[0] == chat_key]:
            del self._handles[cached_key]
        logger.info(f"Reset {chat_key}: removed {len(names)} session(s)")
        return len(names)

    def get_session(self, chat_key: str, name: str | None = None) -> Session | None:
        return self.store.get(chat_key, name or self.store.get_active_session_name(chat_key))

    def get_active_session_name(self, chat_key: str) -> str:
        return self.store.get_active_session_name(chat_key)

    def list_sessions(self, chat_key: str) -> list[Session]:
        return self.store.list(chat_key)

    def list_all_sessions(self) -> list[Session]:
        return self.store.list_all()

    def cached_handle(self, chat_key: str, name: str) -> str | None:
        return self._handles.get((chat_key, name))
