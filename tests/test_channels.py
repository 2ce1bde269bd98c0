"""Tests for channel registration and outbound delivery."""

import asyncio

import pytest

from ccbridge.bus.events import OutboundMessage, UserInfo
from ccbridge.channels.manager import ChannelManager
from ccbridge.config.schema import BotEntry, ChannelConfig, SingleBot

from conftest import RecordingChannel


@pytest.fixture
def channel_config():
    return ChannelConfig(enabled=True, bots=SingleBot(token="t"))


@pytest.fixture
def manager(bus):
    return ChannelManager(bus)


async def test_handle_message_publishes_inbound(bus, channel_config):
    channel = RecordingChannel(channel_config, bus, BotEntry(id="helper", token="t"))
    await channel._handle_message(
        sender_id=42,
        chat_id="-100",
        content="hi",
        user=UserInfo(id="42", channel="telegram", username="bob"),
        is_group=True,
        metadata={"message_id": 7},
    )

    msg = await bus.consume_inbound()
    assert msg.channel == "telegram"
    assert msg.sender_id == "42"
    assert msg.bot_id == "helper"
    assert msg.chat_key == "telegram:helper:group:-100"
    assert msg.metadata == {"message_id": 7}


async def test_deliver_routes_by_platform_and_bot(bus, channel_config, manager):
    default = RecordingChannel(channel_config, bus)
    helper = RecordingChannel(channel_config, bus, BotEntry(id="helper", token="t"))
    discord = RecordingChannel(channel_config, bus, name="discord")
    for channel in (default, helper, discord):
        manager.register(channel)

    assert await manager.deliver(OutboundMessage("telegram", "1", "a"))
    assert await manager.deliver(OutboundMessage("telegram", "1", "b", bot_id="helper"))
    assert await manager.deliver(OutboundMessage("discord", "9", "c", is_group=True))
    assert not await manager.deliver(OutboundMessage("slack", "1", "d"))

    assert [m.content for m in default.sent] == ["a"]
    assert [m.content for m in helper.sent] == ["b"]
    assert [m.content for m in discord.sent] == ["c"]


async def test_long_messages_are_split(bus, channel_config, manager):
    channel = RecordingChannel(channel_config, bus, max_length=10)
    manager.register(channel)

    await manager.deliver(OutboundMessage("telegram", "1", "line one\nline two\nthree"))

    assert [m.content for m in channel.sent] == ["line one", "line two", "three"]


async def test_send_failure_is_reported(bus, channel_config, manager):
    channel = RecordingChannel(channel_config, bus)

    async def broken(msg):
        raise ConnectionError("offline")

    channel.send = broken
    manager.register(channel)
    assert await manager.deliver(OutboundMessage("telegram", "1", "a")) is False


def test_duplicate_registration_is_rejected(bus, channel_config, manager):
    manager.register(RecordingChannel(channel_config, bus))
    with pytest.raises(ValueError):
        manager.register(RecordingChannel(channel_config, bus))


async def test_start_dispatches_outbound_queue(bus, channel_config, manager):
    channel = RecordingChannel(channel_config, bus)
    manager.register(channel)

    await manager.start_all()
    assert channel.is_running
    assert manager.get_status() == {"telegram": {"running": True}}

    await bus.publish_outbound(OutboundMessage("telegram", "1", "queued"))
    for _ in range(50):
        if channel.sent:
            break
        await asyncio.sleep(0.02)

    await manager.stop_all()
    assert [m.content for m in channel.sent] == ["queued"]
    assert not channel.is_running
