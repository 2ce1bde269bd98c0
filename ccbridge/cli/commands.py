"""
CLI 命令模块 - ccbridge 的运维命令行。

使用 Typer 定义命令，Rich 美化输出：
- init：写入默认配置
- start：启动桥接服务
- agents：列出配置中的 Agent
- pairing list / approve / reject：处理配对请求
- allowlist list / add / remove：维护白名单
- sessions list / delete：查看和删除会话
- logs：查看聊天流水
- ask：通过配置的执行引擎跑一轮对话（非流式输出）

所有命令共用一个 SQLite 数据库（配置项 databasePath），每次调用结束即关闭。
"""

import asyncio
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from ccbridge import __logo__, __version__

if TYPE_CHECKING:
    from ccbridge.config.schema import Config
    from ccbridge.db.database import BridgeDatabase

app = typer.Typer(
    name="ccbridge",
    help=f"{__logo__} ccbridge - Chat platforms to Claude Code agents",
    no_args_is_help=True,
)

console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.json")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} ccbridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """ccbridge CLI 根命令回调。"""
    pass


@contextmanager
def _open_database(config_path: Path | None) -> Iterator[tuple["Config", "BridgeDatabase"]]:
    from ccbridge.config.loader import load_config
    from ccbridge.db.database import BridgeDatabase

    config = load_config(config_path)
    db = BridgeDatabase(config.db_path)
    try:
        yield config, db
    finally:
        db.close()


# ============================================================================
# Version / Init
# ============================================================================


@app.command()
def version():
    """打印版本号。"""
    console.print(f"{__logo__} ccbridge v{__version__}")


@app.command()
def init(
    config_path: Path = ConfigOption,
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace of the default agent"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
):
    """
    写入默认配置文件（~/.ccb/config.json）。

    默认配置只有一个 "default" Agent，所有渠道关闭。
    """
    from ccbridge.config.loader import create_default_config, get_config_path
    from ccbridge.utils.helpers import get_workspace_path

    path = config_path or get_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = create_default_config(path, workspace=workspace)
    console.print(f"[green]✓[/green] Created config at {path}")
    workspace_path = get_workspace_path(config.agents.agent_list[0].workspace)
    console.print(f"[green]✓[/green] Default agent workspace: {workspace_path}")
    console.print("\nNext steps:")
    console.print(f"  1. Enable a channel and add a bot token in [cyan]{path}[/cyan]")
    console.print("  2. Try an agent turn: [cyan]ccbridge ask \"Hello!\"[/cyan]")
    console.print("  3. Start the bridge: [cyan]ccbridge start[/cyan]")


# ============================================================================
# Start
# ============================================================================


@app.command()
def start(
    config_path: Path = ConfigOption,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    启动桥接服务（核心启动命令）。

    1. 加载配置，按 logging.level 初始化日志
    2. 打开数据库并组装会话、配对、白名单与命令
    3. 为每个启用渠道的每个机器人创建适配器
    4. 运行主循环与出站分发，Ctrl+C 时等待进行中的轮次后退出
    """
    from ccbridge.bridge.app import build_bridge
    from ccbridge.config.loader import load_config
    from ccbridge.utils.logging import setup_logging

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config.logging.level)

    console.print(f"{__logo__} Starting ccbridge...")
    bridge = build_bridge(config)

    if bridge.channels.channels:
        console.print(f"[green]✓[/green] Channels: {', '.join(bridge.channels.get_status())}")
    else:
        console.print("[yellow]Warning: No channel adapters registered[/yellow]")
    if config.logging.transcript.enabled:
        console.print(f"[green]✓[/green] Transcripts: {bridge.transcript.path}")

    async def run():
        try:
            await bridge.run()
        finally:
            console.print("\nShutting down...")
            await bridge.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


# ============================================================================
# Agents
# ============================================================================


@app.command()
def agents(config_path: Path = ConfigOption):
    """列出配置中的 Agent 与绑定规则。"""
    from ccbridge.config.loader import load_config
    from ccbridge.routing.router import Router

    config = load_config(config_path)
    router = Router.from_config(config)

    table = Table(title="Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Workspace")
    table.add_column("Model")
    table.add_column("MCP Servers")
    for agent in router.get_all_agents():
        marker = " [green](default)[/green]" if agent.id == router.default_agent_id else ""
        table.add_row(
            agent.id + marker,
            agent.name,
            agent.workspace,
            agent.model or "[dim]default[/dim]",
            ", ".join(s.name for s in agent.mcp_servers) or "[dim]-[/dim]",
        )
    console.print(table)

    if router.bindings:
        console.print("\nBindings (first match wins):")
        for i, binding in enumerate(router.bindings, 1):
            match = binding.match
            parts = [f"{k}={v}" for k, v in (("channel", match.channel), ("peer", match.peer), ("group", match.group)) if v]
            console.print(f"  {i}. {' '.join(parts) or '*'} → [cyan]{binding.agent_id}[/cyan]")


# ============================================================================
# Pairing
# ============================================================================


pairing_app = typer.Typer(help="Manage pairing requests")
app.add_typer(pairing_app, name="pairing")


@pairing_app.command("list")
def pairing_list(config_path: Path = ConfigOption):
    """列出未过期的配对请求。"""
    from ccbridge.security.pairing import PairingLedger

    with _open_database(config_path) as (_, db):
        requests = PairingLedger(db).list_pending()

    if not requests:
        console.print("No pending pairing requests.")
        return

    table = Table(title="Pending Pairing Requests")
    table.add_column("Code", style="cyan")
    table.add_column("Chat Key")
    table.add_column("User")
    table.add_column("Expires")
    for req in requests:
        table.add_row(req.code, req.chat_key, f"{req.user.label} ({req.user.id})", req.expires_at.astimezone().strftime("%H:%M:%S"))
    console.print(table)


@pairing_app.command("approve")
def pairing_approve(
    code: str = typer.Argument(..., help="Pairing code"),
    config_path: Path = ConfigOption,
):
    """批准配对码，把对应对话加入白名单。"""
    from ccbridge.errors import PairingError
    from ccbridge.security.pairing import PairingLedger

    with _open_database(config_path) as (_, db):
        try:
            approval = PairingLedger(db).approve(code)
        except PairingError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    console.print(f"[green]✓[/green] Approved {approval.chat_key} ({approval.user.label})")


@pairing_app.command("reject")
def pairing_reject(
    code: str = typer.Argument(..., help="Pairing code"),
    config_path: Path = ConfigOption,
):
    """拒绝配对请求。"""
    from ccbridge.security.pairing import PairingLedger

    with _open_database(config_path) as (_, db):
        rejected = PairingLedger(db).reject(code)

    if rejected:
        console.print(f"[green]✓[/green] Rejected pairing code {code.strip().upper()}")
    else:
        console.print(f"[red]Pairing code {code} not found[/red]")
        raise typer.Exit(1)


# ============================================================================
# Allowlist
# ============================================================================


allowlist_app = typer.Typer(help="Manage the allowlist")
app.add_typer(allowlist_app, name="allowlist")


@allowlist_app.command("list")
def allowlist_list(config_path: Path = ConfigOption):
    """列出白名单中的对话。"""
    from ccbridge.security.allowlist import AllowlistGate

    with _open_database(config_path) as (_, db):
        entries = AllowlistGate(db).list()

    if not entries:
        console.print("Allowlist is empty.")
        return

    table = Table(title="Allowlist")
    table.add_column("Chat Key", style="cyan")
    table.add_column("Added")
    table.add_column("Added By")
    for entry in entries:
        table.add_row(entry.chat_key, entry.added_at.astimezone().strftime("%Y-%m-%d %H:%M"), entry.added_by or "[dim]-[/dim]")
    console.print(table)


@allowlist_app.command("add")
def allowlist_add(
    chat_key: str = typer.Argument(..., help="Chat key, e.g. telegram:123456"),
    config_path: Path = ConfigOption,
):
    """手动把对话加入白名单。"""
    from ccbridge.errors import MalformedKeyError
    from ccbridge.security.allowlist import AllowlistGate

    with _open_database(config_path) as (_, db):
        try:
            added = AllowlistGate(db).add(chat_key, added_by="cli")
        except MalformedKeyError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    if added:
        console.print(f"[green]✓[/green] Added {chat_key} to allowlist")
    else:
        console.print(f"[yellow]{chat_key} is already allowlisted[/yellow]")


@allowlist_app.command("remove")
def allowlist_remove(
    chat_key: str = typer.Argument(..., help="Chat key"),
    purge_sessions: bool = typer.Option(False, "--purge-sessions", help="Also delete the chat's sessions"),
    config_path: Path = ConfigOption,
):
    """把对话移出白名单；加 --purge-sessions 时同时删除该对话的全部会话。"""
    from ccbridge.security.allowlist import AllowlistGate
    from ccbridge.session.store import SessionStore

    with _open_database(config_path) as (_, db):
        removed = AllowlistGate(db).remove(chat_key)
        purged = SessionStore(db).delete_all(chat_key) if purge_sessions else []

    if removed:
        console.print(f"[green]✓[/green] Removed {chat_key} from allowlist")
    else:
        console.print(f"[yellow]{chat_key} was not allowlisted[/yellow]")
    if purged:
        console.print(f"[green]✓[/green] Deleted {len(purged)} session(s): {', '.join(purged)}")


# ============================================================================
# Sessions
# ============================================================================


sessions_app = typer.Typer(help="Inspect stored sessions")
app.add_typer(sessions_app, name="sessions")


@sessions_app.command("list")
def sessions_list(
    chat_key: str = typer.Option(None, "--chat", help="Only show sessions of this chat key"),
    config_path: Path = ConfigOption,
):
    """列出会话，最近活跃的在前。"""
    from ccbridge.session.store import SessionStore
    from ccbridge.utils.helpers import format_age, truncate_string

    with _open_database(config_path) as (_, db):
        store = SessionStore(db)
        items = store.list(chat_key) if chat_key else store.list_all()

    if not items:
        console.print("No sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("Chat Key", style="cyan")
    table.add_column("Name")
    table.add_column("Agent")
    table.add_column("Handle")
    table.add_column("Last Active")
    for s in items:
        handle = truncate_string(s.handle, 24) if s.resumable else "[dim]pending[/dim]"
        table.add_row(s.chat_key, s.session_name, s.agent_id, handle, format_age(s.last_active))
    console.print(table)


@sessions_app.command("delete")
def sessions_delete(
    chat_key: str = typer.Argument(..., help="Chat key"),
    name: str = typer.Option(None, "--name", "-n", help="Session name; omit to delete all sessions of the chat"),
    config_path: Path = ConfigOption,
):
    """删除一个会话，或某个对话的全部会话。"""
    from ccbridge.session.store import SessionStore

    with _open_database(config_path) as (_, db):
        store = SessionStore(db)
        if name:
            deleted = [name] if store.delete(chat_key, name) else []
        else:
            deleted = store.delete_all(chat_key)

    if deleted:
        console.print(f"[green]✓[/green] Deleted {len(deleted)} session(s): {', '.join(deleted)}")
    else:
        console.print("[yellow]No matching sessions[/yellow]")


# ============================================================================
# Logs
# ============================================================================


@app.command()
def logs(
    chat_key: str = typer.Option(None, "--chat", help="Only show entries of this chat key"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum number of entries"),
    files: bool = typer.Option(False, "--files", help="List transcript files instead"),
    config_path: Path = ConfigOption,
):
    """查看聊天流水（需要在配置中开启 logging.transcript）。"""
    from ccbridge.bridge.transcript import TranscriptLogger
    from ccbridge.config.loader import load_config
    from ccbridge.utils.helpers import truncate_string

    config = load_config(config_path)
    transcript_config = config.logging.transcript
    if not transcript_config.enabled:
        console.print("[yellow]Transcript logging is not enabled.[/yellow]")
        console.print("[dim]Set logging.transcript.enabled to true in the config.[/dim]")

    transcript = TranscriptLogger(transcript_config)
    if files:
        for path in transcript.files():
            console.print(str(path))
        return

    entries = transcript.read(chat_key, limit=limit)
    if not entries:
        console.print("No transcript entries.")
        return

    for entry in entries:
        label = "[blue bold]USER →[/blue bold]" if entry.direction == "incoming" else "[green bold]AGENT ←[/green bold]"
        agent = f" [yellow]\\[{entry.agent_id}][/yellow]" if entry.agent_id else ""
        kind = f" [magenta]({entry.kind})[/magenta]" if entry.kind != "text" else ""
        console.print(f"[dim]{entry.timestamp}[/dim] {label} [dim]{entry.chat_key}[/dim]{agent}{kind}")
        console.print(f"  {truncate_string(entry.content, 200)}", markup=False)


# ============================================================================
# Ask
# ============================================================================


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    chat_key: str = typer.Option("cli:direct", "--chat", help="Chat key whose session is used"),
    agent_id: str = typer.Option(None, "--agent", "-a", help="Agent to use instead of the bindings"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render the reply as Markdown"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs"),
    config_path: Path = ConfigOption,
):
    """
    通过配置的执行引擎跑一轮对话，回复一次性输出。

    与聊天渠道共享会话：--chat 指定的对话会恢复上一次的执行上下文。
    """
    from loguru import logger

    from ccbridge.bus.events import InboundMessage, UserInfo
    from ccbridge.errors import BridgeError
    from ccbridge.providers.claude_runner import ClaudeAgentRunner
    from ccbridge.routing.chatkey import decode_chat_key
    from ccbridge.routing.router import Router
    from ccbridge.session.manager import SessionManager
    from ccbridge.session.store import SessionStore
    from ccbridge.utils.logging import setup_logging

    if logs:
        setup_logging("DEBUG")
    else:
        logger.disable("ccbridge")

    try:
        key = decode_chat_key(chat_key)
    except BridgeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    inbound = InboundMessage(
        channel=key.platform,
        sender_id=key.peer_id,
        chat_id=key.peer_id,
        content=message,
        user=UserInfo(id=key.peer_id, channel=key.platform),
        bot_id=key.bot_id,
        is_group=key.is_group,
    )

    with _open_database(config_path) as (config, db):
        manager = SessionManager(Router.from_config(config), SessionStore(db), ClaudeAgentRunner())

        async def run_once() -> str:
            try:
                return await manager.collect_response(inbound, agent_id=agent_id, session_name=key.session_name)
            finally:
                await manager.runner.aclose()

        try:
            with console.status("[dim]Waiting for the agent...[/dim]", spinner="dots"):
                response = asyncio.run(run_once())
        except BridgeError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)

    console.print(f"[cyan]{__logo__} ccbridge[/cyan]")
    console.print(Markdown(response) if markdown else response)


if __name__ == "__main__":
    app()
