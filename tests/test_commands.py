"""Tests for chat command parsing, dispatch and the built-in commands."""

import pytest

from ccbridge.commands.handlers import register_builtin_commands
from ccbridge.commands.registry import CommandContext, CommandDefinition, CommandRegistry

from conftest import make_message

CHAT = "telegram:123"


@pytest.fixture
def registry(sessions):
    registry = CommandRegistry()
    register_builtin_commands(registry, sessions)
    return registry


class Chat:
    """Runs commands against a registry and keeps the replies."""

    def __init__(self, registry):
        self.registry = registry
        self.replies: list[str] = []

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def run(self, text: str, **message_kwargs) -> bool:
        parsed = CommandRegistry.parse(text)
        ctx = CommandContext(
            command=parsed.command,
            args=parsed.args,
            raw_args=parsed.raw_args,
            message=make_message(text, **message_kwargs),
            reply=self.reply,
        )
        return await self.registry.dispatch(ctx)

    @property
    def last(self) -> str:
        return self.replies[-1]


@pytest.fixture
def chat(registry):
    return Chat(registry)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, command, args",
    [
        ("/help", "help", []),
        ("  /PING  ", "ping", []),
        ("/session new work", "session", ["new", "work"]),
        ("/Session@MyBot   new   work", "session", ["new", "work"]),
    ],
)
def test_parse(text, command, args):
    parsed = CommandRegistry.parse(text)
    assert parsed.command == command
    assert parsed.args == args


def test_parse_keeps_raw_args():
    assert CommandRegistry.parse("/ask  what  now ").raw_args == "what  now"


@pytest.mark.parametrize("text", ["hello", "", "/", "/ ", "/@bot", "path/to/file"])
def test_parse_non_commands(text):
    assert CommandRegistry.parse(text) is None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

async def test_unknown_command_is_not_dispatched(chat):
    assert await chat.run("/nope") is False
    assert chat.replies == []


async def test_aliases(chat):
    assert await chat.run("/?") is True
    assert chat.last.startswith("Available commands:")


def test_all_lists_each_command_once(registry):
    names = [d.name for d in registry.all()]
    assert len(names) == len(set(names))
    assert {"new", "sessions", "session", "help", "agents", "mcp"} <= set(names)
    assert registry.has("reset") and registry.get("RESET").name == "new"


async def test_register_custom_command():
    registry = CommandRegistry()
    seen = []

    async def echo(ctx):
        seen.append(ctx.raw_args)

    registry.register(CommandDefinition("echo", "Echo", echo, usage="<text>"))
    ctx = CommandContext("echo", ["a", "b"], make_message("/echo a b"), reply=None, raw_args="a b")
    assert await registry.dispatch(ctx) is True
    assert seen == ["a b"]
    assert "/echo <text> - Echo" in registry.generate_help()


# ---------------------------------------------------------------------------
# Built-in commands
# ---------------------------------------------------------------------------

async def test_session_lifecycle(chat, sessions):
    await chat.run("/session")
    assert chat.last == "Current session: main"

    await chat.run("/session new work")
    assert 'Created and switched to session "work"' in chat.last
    assert sessions.get_active_session_name(CHAT) == "work"

    await chat.run("/session new work")
    assert "already exists" in chat.last

    await chat.run("/session missing")
    assert 'Session "missing" not found' in chat.last

    await chat.run("/sessions")
    assert "• work ← active" in chat.last


async def test_delete_refuses_active_session(chat, sessions):
    sessions.create_named_session(CHAT, "work")
    await chat.run("/delete work")
    assert "Cannot delete the active session" in chat.last

    sessions.create_named_session(CHAT, "other")
    await chat.run("/delete work")
    assert chat.last == '✓ Deleted session "work"'


async def test_new_and_clear_reset_the_chat(chat, sessions):
    sessions.create_named_session(CHAT, "work")
    await chat.run("/reset")
    assert sessions.list_sessions(CHAT) == []

    sessions.create_named_session(CHAT, "a")
    sessions.create_named_session(CHAT, "b")
    await chat.run("/clear")
    assert chat.last == "✓ Cleared 2 session(s). Starting fresh."


async def test_sessions_when_empty(chat):
    await chat.run("/sessions")
    assert chat.last.startswith("No sessions found")


async def test_status(chat, sessions):
    sessions.create_named_session(CHAT, "work")
    await chat.run("/status")
    assert "• Active session: work" in chat.last
    assert "• Agent: default" in chat.last
    assert "no (no completed turn yet)" in chat.last


async def test_whoami_for_group(chat):
    await chat.run("/whoami", chat_id="555", is_group=True, username="alice")
    assert "• Username: alice" in chat.last
    assert "• Chat key: telegram:group:555" in chat.last
    assert "• Group ID: 555" in chat.last


async def test_ping(chat):
    await chat.run("/ping")
    assert chat.last.startswith("Pong!")


async def test_model_and_workspace_need_a_session(chat, sessions):
    await chat.run("/model")
    assert chat.last.startswith("No active session")

    sessions.create_named_session(CHAT, "work")
    await chat.run("/model")
    assert chat.last == "Current model: default"
    await chat.run("/model opus")
    assert "not supported mid-session" in chat.last
    await chat.run("/workspace")
    assert chat.last.startswith("Current workspace: ")


async def test_agent_lists_and_describes(chat, sessions):
    sessions.create_named_session(CHAT, "work")
    await chat.run("/agent")
    assert "• default: Default Agent ← current" in chat.last
    assert "• coder: Coder Agent" in chat.last

    await chat.run("/agent coder")
    assert chat.last.startswith("coder: Coder Agent")

    await chat.run("/agent ghost")
    assert chat.last == "Unknown agent: ghost"


async def test_agents_and_mcp(chat):
    await chat.run("/agents")
    assert "• coder: Coder Agent" in chat.last
    await chat.run("/mcp")
    assert "No MCP servers configured." in chat.last
