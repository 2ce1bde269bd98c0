"""
Claude Agent SDK 执行引擎适配器。

通过 claude_agent_sdk.query() 执行单轮对话：
- AssistantMessage 中的 TextBlock → text 事件，ToolUseBlock → tool_use 事件
- ResultMessage → result 事件（携带 session_id 作为会话句柄）
- TurnOptions.resume_handle 映射到 ClaudeAgentOptions.resume，实现跨进程的上下文恢复
"""

from typing import Any, AsyncIterator

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    TextBlock,
    ToolUseBlock,
    query,
)
from loguru import logger

from ccbridge.config.schema import MCPServerConfig
from ccbridge.errors import ExecutionError
from ccbridge.providers.base import AgentEvent, AgentRunner, TurnOptions


def _mcp_servers_to_sdk(servers: list[MCPServerConfig]) -> dict[str, dict[str, Any]]:
    """将 MCP 配置列表转换为 SDK 需要的 {name: config} 字典。"""
    result: dict[str, dict[str, Any]] = {}
    for server in servers:
        if server.type == "sse":
            if not server.url:
                logger.warning(f"MCP server '{server.name}' has type sse but no url, skipping")
                continue
            result[server.name] = {"type": "sse", "url": server.url}
        else:
            if not server.command:
                logger.warning(f"MCP server '{server.name}' has no command, skipping")
                continue
            entry: dict[str, Any] = {"type": "stdio", "command": server.command, "args": list(server.args)}
            if server.env:
                entry["env"] = dict(server.env)
            result[server.name] = entry
    return result


class ClaudeAgentRunner(AgentRunner):
    """
    基于 claude-agent-sdk 的 AgentRunner 实现。

    每轮对话调用一次 query()，不保留长连接；上下文连续性完全依赖 resume 句柄。
    """

    def build_options(self, options: TurnOptions) -> ClaudeAgentOptions:
        opts: dict[str, Any] = {
            "cwd": options.workspace,
            "permission_mode": options.permission_mode,
        }
        if options.model:
            opts["model"] = options.model
        if options.system_prompt:
            opts["system_prompt"] = options.system_prompt
        if options.max_turns:
            opts["max_turns"] = options.max_turns
        if options.allowed_tools is not None:
            opts["allowed_tools"] = options.allowed_tools
        if options.disallowed_tools is not None:
            opts["disallowed_tools"] = options.disallowed_tools
        if options.mcp_servers:
            opts["mcp_servers"] = _mcp_servers_to_sdk(options.mcp_servers)
        if options.resume_handle:
            opts["resume"] = options.resume_handle
        return ClaudeAgentOptions(**opts)

    async def run_turn(self, prompt: str, options: TurnOptions) -> AsyncIterator[AgentEvent]:
        sdk_options = self.build_options(options)
        logger.debug(
            f"Running turn in {options.workspace} "
            f"(resume={options.resume_handle or '-'}, model={options.model or 'default'})"
        )

        async for message in query(prompt=prompt, options=sdk_options):
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        if block.text:
                            yield AgentEvent.text_chunk(block.text)
                    elif isinstance(block, ToolUseBlock):
                        yield AgentEvent.tool_use(block.name, dict(block.input or {}))
            elif isinstance(message, ResultMessage):
                if message.is_error:
                    raise ExecutionError(message.result or f"Agent turn failed ({message.subtype})")
                yield AgentEvent.result(message.session_id, text=message.result or "")
