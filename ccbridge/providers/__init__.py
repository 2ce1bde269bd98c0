"""
Agent 执行引擎抽象层模块（providers 包）。

模块组成：
- base.py          : AgentRunner 抽象基类、TurnOptions 执行参数、AgentEvent 流式事件
- claude_runner.py : 基于 claude-agent-sdk 的 AgentRunner 实现

ClaudeAgentRunner 不在这里导入，避免只使用核心逻辑（或测试）时强制加载 SDK。
"""

from ccbridge.providers.base import AgentEvent, AgentRunner, TurnOptions

__all__ = ["AgentEvent", "AgentRunner", "TurnOptions"]
