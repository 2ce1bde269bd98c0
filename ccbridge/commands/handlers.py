"""
内置聊天命令。

会话管理：/new (/reset)、/sessions、/session、/delete、/abort、/clear
状态信息：/help (/h, /?)、/status、/whoami、/ping
设置查看：/model、/workspace、/agents、/agent、/mcp

Agent 的选择完全由配置中的绑定规则决定，/agent 只展示，不提供切换。
"""

import time
from datetime import datetime

from ccbridge.commands.registry import CommandContext, CommandDefinition, CommandRegistry
from ccbridge.session.manager import SessionManager
from ccbridge.utils.helpers import format_age, format_timestamp


def register_builtin_commands(registry: CommandRegistry, sessions: SessionManager) -> None:
    """向注册表注册全部内置命令。"""
    router = sessions.router

    # ── 会话管理 ──────────────────────────────────────────────────

    async def new_session(ctx: CommandContext) -> None:
        sessions.reset_chat(ctx.chat_key)
        await ctx.reply("✓ Started a fresh session. Previous context cleared.")

    async def list_sessions(ctx: CommandContext) -> None:
        items = sessions.list_sessions(ctx.chat_key)
        if not items:
            await ctx.reply("No sessions found. Start chatting to create one.")
            return
        active = sessions.get_active_session_name(ctx.chat_key)
        lines = ["Your sessions:"]
        for s in items:
            marker = " ← active" if s.session_name == active else ""
            lines.append(f"• {s.session_name}{marker} (last active: {format_age(s.last_active)})")
        await ctx.reply("\n".join(lines))

    async def session(ctx: CommandContext) -> None:
        if not ctx.args:
            await ctx.reply(f"Current session: {sessions.get_active_session_name(ctx.chat_key)}")
            return

        if ctx.args[0] == "new":
            name = ctx.args[1] if len(ctx.args) > 1 else f"session-{int(time.time())}"
            # 与对话轮次使用同一个 Agent（机器人绑定优先，群组按群组 ID 路由）
            agent = sessions.resolve_agent(ctx.message, ctx.agent_id)
            try:
                sessions.create_named_session(ctx.chat_key, name, agent_id=agent.id)
            except ValueError as e:
                await ctx.reply(str(e))
                return
            await ctx.reply(f'✓ Created and switched to session "{name}"')
            return

        name = ctx.args[0]
        if sessions.switch_session(ctx.chat_key, name):
            await ctx.reply(f'✓ Switched to session "{name}"')
        else:
            await ctx.reply(f'Session "{name}" not found. Use /session new {name} to create it.')

    async def delete(ctx: CommandContext) -> None:
        name = ctx.args[0] if ctx.args else "main"
        if name == sessions.get_active_session_name(ctx.chat_key):
            await ctx.reply("Cannot delete the active session. Switch to another session first.")
            return
        if sessions.delete_session(ctx.chat_key, name):
            await ctx.reply(f'✓ Deleted session "{name}"')
        else:
            await ctx.reply(f'Session "{name}" not found.')

    async def abort(ctx: CommandContext) -> None:
        name = sessions.get_active_session_name(ctx.chat_key)
        sessions.delete_session(ctx.chat_key, name)
        await ctx.reply(f'✓ Aborted and reset session "{name}".')

    async def clear(ctx: CommandContext) -> None:
        count = sessions.reset_chat(ctx.chat_key)
        await ctx.reply(f"✓ Cleared {count} session(s). Starting fresh.")

    # ── 状态信息 ──────────────────────────────────────────────────

    async def help_(ctx: CommandContext) -> None:
        await ctx.reply(registry.generate_help())

    async def status(ctx: CommandContext) -> None:
        active_name = sessions.get_active_session_name(ctx.chat_key)
        items = sessions.list_sessions(ctx.chat_key)
        active = next((s for s in items if s.session_name == active_name), None)

        lines = ["Session Status:", f"• Active session: {active_name}", f"• Total sessions: {len(items)}"]
        if active:
            lines.append(f"• Agent: {active.agent_id}")
            lines.append(f"• Workspace: {active.workspace or '(default)'}")
            lines.append(f"• Resumable: {'yes' if active.resumable else 'no (no completed turn yet)'}")
            lines.append(f"• Created: {format_timestamp(active.created_at)}")
            lines.append(f"• Last active: {format_timestamp(active.last_active)}")
        await ctx.reply("\n".join(lines))

    async def whoami(ctx: CommandContext) -> None:
        msg = ctx.message
        lines = ["Your Info:", f"• User ID: {msg.user.id}"]
        if msg.user.username:
            lines.append(f"• Username: {msg.user.username}")
        if msg.user.display_name:
            lines.append(f"• Display name: {msg.user.display_name}")
        lines.append(f"• Channel: {msg.channel}")
        if msg.bot_id:
            lines.append(f"• Bot: {msg.bot_id}")
        lines.append(f"• Chat key: {msg.chat_key}")
        if msg.is_group:
            lines.append(f"• Group ID: {msg.group_id}")
        await ctx.reply("\n".join(lines))

    async def ping(ctx: CommandContext) -> None:
        latency = (datetime.now() - ctx.message.timestamp).total_seconds() * 1000
        await ctx.reply(f"Pong! ({max(latency, 0):.0f}ms)")

    # ── 设置查看 ──────────────────────────────────────────────────

    async def model(ctx: CommandContext) -> None:
        active = sessions.get_session(ctx.chat_key)
        if active is None:
            await ctx.reply("No active session. Start chatting first.")
            return
        if ctx.args:
            await ctx.reply(
                "Model changes are not supported mid-session.\n"
                "Models are set per agent in the configuration; use /new to start over."
            )
            return
        agent = router.get_agent(active.agent_id)
        await ctx.reply(f"Current model: {(agent.model if agent else None) or 'default'}")

    async def workspace(ctx: CommandContext) -> None:
        active = sessions.get_session(ctx.chat_key)
        if active is None:
            await ctx.reply("No active session. Start chatting first.")
            return
        await ctx.reply(f"Current workspace: {active.workspace or '(not set)'}")

    async def agents(ctx: CommandContext) -> None:
        lines = ["🤖 Available Agents:"]
        for agent in router.get_all_agents():
            lines.append("")
            lines.append(f"• {agent.id}: {agent.name}")
            lines.append(f"  Workspace: {agent.workspace}")
            if agent.model:
                lines.append(f"  Model: {agent.model}")
            if agent.mcp_servers:
                lines.append(f"  MCP Servers: {', '.join(s.name for s in agent.mcp_servers)}")
            if agent.tools:
                lines.append(f"  Tools: {', '.join(agent.tools)}")
            if agent.disallowed_tools:
                lines.append(f"  Blocked Tools: {', '.join(agent.disallowed_tools)}")
        await ctx.reply("\n".join(lines))

    async def agent(ctx: CommandContext) -> None:
        if ctx.args:
            target = router.get_agent(ctx.args[0])
            if target is None:
                await ctx.reply(f"Unknown agent: {ctx.args[0]}")
                return
            await ctx.reply(
                f"{target.id}: {target.name}\n  Workspace: {target.workspace}\n"
                "Agents are assigned by bindings in the configuration."
            )
            return

        active = sessions.get_session(ctx.chat_key)
        current = active.agent_id if active else None
        lines = ["Available agents:"]
        for a in router.get_all_agents():
            marker = " ← current" if a.id == current else ""
            lines.append(f"• {a.id}: {a.name}{marker}")
        await ctx.reply("\n".join(lines))

    async def mcp(ctx: CommandContext) -> None:
        lines = ["🔗 MCP Servers:", ""]
        configured = [a for a in router.get_all_agents() if a.mcp_servers]
        if not configured:
            lines.append("No MCP servers configured.")
            lines.append("Add mcpServers to an agent in the configuration file.")
        for a in configured:
            lines.append(f"Agent: {a.name} ({a.id})")
            for server in a.mcp_servers:
                target = server.url if server.type == "sse" else server.command
                lines.append(f"  • {server.name} ({server.type}): {target}")
            lines.append("")
        await ctx.reply("\n".join(lines).rstrip())

    for definition in (
        CommandDefinition("new", "Start a fresh session", new_session, aliases=("reset",)),
        CommandDefinition("sessions", "List your sessions", list_sessions),
        CommandDefinition("session", "Show, switch to or create a named session", session,
                          usage="[name] | new [name]"),
        CommandDefinition("delete", "Delete a session", delete, usage="[name]"),
        CommandDefinition("abort", "Abort and reset the active session", abort),
        CommandDefinition("clear", "Clear all sessions and start fresh", clear),
        CommandDefinition("help", "Show available commands", help_, aliases=("h", "?")),
        CommandDefinition("status", "Show session status", status),
        CommandDefinition("whoami", "Show your user info", whoami),
        CommandDefinition("ping", "Check if the bot is responsive", ping),
        CommandDefinition("model", "Show the model of the active session", model),
        CommandDefinition("workspace", "Show the workspace of the active session", workspace),
        CommandDefinition("agents", "List all configured agents", agents),
        CommandDefinition("agent", "Show the current agent", agent, usage="[agent-id]"),
        CommandDefinition("mcp", "Show configured MCP servers", mcp),
    ):
        registry.register(definition)
