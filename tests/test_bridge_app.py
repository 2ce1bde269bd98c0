"""Tests for assembling and running the whole bridge."""

import asyncio

from ccbridge.bridge.app import build_bridge
from ccbridge.bus.events import UserInfo
from ccbridge.config.schema import (
    AgentsConfig,
    BotEntry,
    ChannelConfig,
    ChannelsConfig,
    Config,
    LoggingConfig,
    MultiBot,
    TranscriptConfig,
)
from ccbridge.db.database import BridgeDatabase
from ccbridge.providers.base import AgentEvent

from conftest import FakeRunner, RecordingChannel, make_agent


def make_config(tmp_path, **channels):
    return Config(
        agents=AgentsConfig(default="default", agent_list=[make_agent("default", tmp_path)]),
        channels=ChannelsConfig(**channels),
        logging=LoggingConfig(transcript=TranscriptConfig(enabled=True, path=str(tmp_path / "logs"))),
        database_path=str(tmp_path / "bridge.db"),
    )


def test_one_database_is_shared(tmp_path):
    bridge = build_bridge(make_config(tmp_path), runner=FakeRunner())
    try:
        assert bridge.pairing.db is bridge.db
        assert bridge.gate.db is bridge.db
        assert bridge.sessions.store.db is bridge.db
        assert bridge.loop.transcript is bridge.transcript
        assert bridge.commands.has("help")
        assert (tmp_path / "bridge.db").exists()
    finally:
        bridge.db.close()


def test_adapters_are_created_per_bot(tmp_path):
    telegram = ChannelConfig(enabled=True, dm_policy="open", bots=MultiBot(bots=[
        BotEntry(id="a", token="1"),
        BotEntry(id="b", token="2"),
    ]))
    discord = ChannelConfig(enabled=True, bots={"mode": "single", "token": "d"})
    bridge = build_bridge(
        make_config(tmp_path, telegram=telegram, discord=discord),
        runner=FakeRunner(),
        adapters={"telegram": RecordingChannel},
        db=BridgeDatabase(":memory:"),
    )
    try:
        # discord has no adapter, so it is skipped
        assert sorted(bridge.channels.channels) == [("telegram", "a"), ("telegram", "b")]
    finally:
        bridge.db.close()


async def test_message_flows_from_channel_to_agent_and_back(tmp_path):
    runner = FakeRunner()
    runner.script(AgentEvent.text_chunk("hi there"), AgentEvent.result("h1"))
    telegram = ChannelConfig(enabled=True, dm_policy="open", bots={"mode": "single", "token": "t"})
    bridge = build_bridge(
        make_config(tmp_path, telegram=telegram),
        runner=runner,
        adapters={"telegram": RecordingChannel},
        db=BridgeDatabase(":memory:"),
    )
    channel = bridge.channels.get_channel("telegram")
    task = asyncio.create_task(bridge.run())

    await channel._handle_message("7", "7", "hello", user=UserInfo(id="7", channel="telegram"))
    for _ in range(100):
        if channel.sent:
            break
        await asyncio.sleep(0.02)

    await bridge.stop()
    await asyncio.wait_for(task, timeout=5)

    assert [m.content for m in channel.sent] == ["hi there"]
    assert runner.closed
    assert [e.content for e in bridge.transcript.read("telegram:7")] == ["hello", "hi there"]


def test_start_command_applies_the_configured_log_level(tmp_path, monkeypatch):
    from typer.testing import CliRunner

    from ccbridge.bridge import app as bridge_app
    from ccbridge.cli.commands import app
    from ccbridge.config.loader import save_config
    from ccbridge.utils import logging as logging_utils

    config = make_config(tmp_path)
    config.logging.level = "WARNING"
    config_path = tmp_path / "config.json"
    save_config(config, config_path)

    levels = []
    built = []

    async def run_once(self):
        return None

    def build(config):
        bridge = build_bridge(config, runner=FakeRunner())
        built.append(bridge)
        return bridge

    monkeypatch.setattr(logging_utils, "setup_logging", lambda level: levels.append(level))
    monkeypatch.setattr(bridge_app, "build_bridge", build)
    monkeypatch.setattr(bridge_app.Bridge, "run", run_once)

    result = CliRunner().invoke(app, ["start", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert levels == ["WARNING"]
    assert "No channel adapters registered" in result.output
    assert built[0].config.database_path == str(tmp_path / "bridge.db")
    assert built[0].sessions.runner.closed
