"""Tests for mapping turn options onto the Claude Agent SDK."""

from ccbridge.config.schema import MCPServerConfig
from ccbridge.providers.base import TurnOptions
from ccbridge.providers.claude_runner import ClaudeAgentRunner, _mcp_servers_to_sdk

from conftest import make_agent


def test_build_options_from_profile(tmp_path):
    agent = make_agent(
        "coder",
        tmp_path,
        model="claude-sonnet-4-5",
        system_prompt="Be brief",
        max_turns=3,
        permission_mode="acceptEdits",
        disallowed_tools=["Bash"],
    )
    options = ClaudeAgentRunner().build_options(TurnOptions.from_profile(agent, resume_handle="abc"))

    assert options.cwd == str(tmp_path / "coder")
    assert options.model == "claude-sonnet-4-5"
    assert options.system_prompt == "Be brief"
    assert options.max_turns == 3
    assert options.permission_mode == "acceptEdits"
    assert options.disallowed_tools == ["Bash"]
    assert options.resume == "abc"


def test_build_options_leaves_unset_fields_alone(tmp_path):
    options = ClaudeAgentRunner().build_options(TurnOptions(workspace=str(tmp_path)))
    assert options.resume is None
    assert options.model is None


def test_mcp_servers_are_keyed_by_name():
    servers = [
        MCPServerConfig(name="gh", command="gh-mcp", args=["--stdio"], env={"TOKEN": "x"}),
        MCPServerConfig(name="remote", type="sse", url="http://localhost:9000/sse"),
        MCPServerConfig(name="broken", type="sse"),
        MCPServerConfig(name="empty"),
    ]
    assert _mcp_servers_to_sdk(servers) == {
        "gh": {"type": "stdio", "command": "gh-mcp", "args": ["--stdio"], "env": {"TOKEN": "x"}},
        "remote": {"type": "sse", "url": "http://localhost:9000/sse"},
    }
