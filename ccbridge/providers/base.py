"""
Agent 执行端口定义模块。

本模块定义了与 agent 执行引擎交互的抽象接口：
- TurnOptions : 单轮对话的执行参数（工作区、模型、权限模式、工具白名单、恢复句柄等）
- AgentEvent  : 执行引擎流式返回的事件（text / tool_use / result）
- AgentRunner : 抽象基类，所有执行引擎适配器必须实现 run_turn()

架构角色：
  SessionManager.stream_turn() → AgentRunner.run_turn() → 执行引擎 → AgentEvent 流

result 事件携带权威的会话句柄，SessionManager 只从中提取句柄，不转发它的文本
（执行引擎通常会在 result 里重复一遍已经流式输出过的内容）。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal

from ccbridge.config.schema import AgentProfile, MCPServerConfig


@dataclass
class TurnOptions:
    """
    单轮对话的执行参数。

    属性：
        workspace: 工作目录（agent 的 cwd）
        model: 模型名，None 时由执行引擎决定
        system_prompt: 追加的系统提示词
        permission_mode: 权限模式（default / acceptEdits / plan / bypassPermissions）
        max_turns: 最大轮次
        allowed_tools / disallowed_tools: 工具白名单 / 黑名单
        mcp_servers: MCP 服务器配置
        resume_handle: 恢复令牌，只有真实的会话句柄才会出现在这里
    """
    workspace: str
    model: str | None = None
    system_prompt: str | None = None
    permission_mode: str = "default"
    max_turns: int | None = None
    allowed_tools: list[str] | None = None
    disallowed_tools: list[str] | None = None
    mcp_servers: list[MCPServerConfig] = field(default_factory=list)
    resume_handle: str | None = None

    @classmethod
    def from_profile(cls, agent: AgentProfile, resume_handle: str | None = None) -> "TurnOptions":
        return cls(
            workspace=str(agent.workspace_path),
            model=agent.model,
            system_prompt=agent.system_prompt,
            permission_mode=agent.permission_mode,
            max_turns=agent.max_turns,
            allowed_tools=list(agent.tools) if agent.tools is not None else None,
            disallowed_tools=list(agent.disallowed_tools) if agent.disallowed_tools is not None else None,
            mcp_servers=list(agent.mcp_servers),
            resume_handle=resume_handle,
        )


@dataclass
class AgentEvent:
    """
    执行引擎的流式事件。

    属性：
        kind: 事件类型（text=文本片段, tool_use=工具调用, result=本轮结束）
        text: 文本内容（text 事件；result 事件中可能是重复的完整回复）
        tool_name: 工具名（tool_use 事件）
        tool_input: 工具参数（tool_use 事件）
        session_handle: 会话句柄（result 事件）
        is_error: result 事件是否表示执行失败
    """
    kind: Literal["text", "tool_use", "result"]
    text: str = ""
    tool_name: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    session_handle: str | None = None
    is_error: bool = False

    @classmethod
    def text_chunk(cls, text: str) -> "AgentEvent":
        return cls(kind="text", text=text)

    @classmethod
    def tool_use(cls, name: str, tool_input: dict[str, Any] | None = None) -> "AgentEvent":
        return cls(kind="tool_use", tool_name=name, tool_input=tool_input or {})

    @classmethod
    def result(cls, session_handle: str | None, text: str = "", is_error: bool = False) -> "AgentEvent":
        return cls(kind="result", text=text, session_handle=session_handle, is_error=is_error)


class AgentRunner(ABC):
    """
    Agent 执行引擎抽象基类。

    实现类需要把执行引擎的输出转换成 AgentEvent 流，并在结束时产出一个 result 事件。
    执行失败时直接抛出异常，由调用方转换为 error 块。
    """

    @abstractmethod
    def run_turn(self, prompt: str, options: TurnOptions) -> AsyncIterator[AgentEvent]:
        """
        执行一轮对话（通常实现为 async generator）。

        参数：
            prompt: 用户输入
            options: 执行参数（含恢复句柄）

        返回：
            AgentEvent 的异步迭代器
        """

    async def aclose(self) -> None:
        """释放执行引擎占用的资源（默认无操作）。"""
        return None
