"""Shared fixtures for ccbridge tests.

Everything runs against an in-memory SQLite database and a scripted agent
runner, so no agent runtime or chat platform is needed.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ccbridge.bus.events import InboundMessage, OutboundMessage, UserInfo
from ccbridge.bus.queue import MessageBus
from ccbridge.channels.base import BaseChannel
from ccbridge.config.schema import AgentProfile
from ccbridge.db.database import BridgeDatabase
from ccbridge.providers.base import AgentEvent, AgentRunner, TurnOptions
from ccbridge.routing.router import Router
from ccbridge.session.manager import SessionManager
from ccbridge.session.store import SessionStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRunner(AgentRunner):
    """Agent runner that replays scripted turns.

    Each entry in ``turns`` is a list of AgentEvents, optionally containing an
    Exception instance which is raised at that point of the stream.
    """

    def __init__(self, turns=None):
        self.turns = list(turns or [])
        self.calls: list[tuple[str, TurnOptions]] = []
        self.closed_streams = 0
        self.closed = False

    def script(self, *events) -> None:
        self.turns.append(list(events))

    async def run_turn(self, prompt, options):
        self.calls.append((prompt, options))
        events = self.turns.pop(0) if self.turns else [
            AgentEvent.text_chunk("ok"),
            AgentEvent.result(f"sess-{len(self.calls)}"),
        ]
        try:
            for event in events:
                if isinstance(event, BaseException):
                    raise event
                yield event
        finally:
            self.closed_streams += 1

    async def aclose(self) -> None:
        self.closed = True


class RecordingChannel(BaseChannel):
    """Channel adapter that records what it is asked to send."""

    def __init__(self, config, bus, bot=None, name="telegram", max_length=4000):
        super().__init__(config, bus, bot)
        self.name = name
        self.max_message_length = max_length
        self.sent: list[OutboundMessage] = []

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def send(self, msg: OutboundMessage) -> None:
        self.sent.append(msg)


def make_agent(agent_id: str, tmp_path, **overrides) -> AgentProfile:
    fields = {
        "id": agent_id,
        "name": f"{agent_id.title()} Agent",
        "workspace": str(tmp_path / agent_id),
    }
    fields.update(overrides)
    return AgentProfile(**fields)


def make_message(
    content: str = "hello",
    channel: str = "telegram",
    sender_id: str = "123",
    chat_id: str | None = None,
    bot_id: str | None = None,
    is_group: bool = False,
    username: str | None = None,
) -> InboundMessage:
    return InboundMessage(
        channel=channel,
        sender_id=sender_id,
        chat_id=chat_id or sender_id,
        content=content,
        user=UserInfo(id=sender_id, channel=channel, username=username),
        bot_id=bot_id,
        is_group=is_group,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    database = BridgeDatabase(":memory:")
    yield database
    database.close()


@pytest.fixture
def store(db, clock):
    return SessionStore(db, clock=clock)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def router(tmp_path):
    return Router([make_agent("default", tmp_path), make_agent("coder", tmp_path)], default_agent="default")


@pytest.fixture
def sessions(router, store, runner):
    return SessionManager(router, store, runner)


@pytest.fixture
def bus():
    return MessageBus()


def drain_outbound(bus: MessageBus) -> list[OutboundMessage]:
    messages = []
    while not bus.outbound.empty():
        messages.append(bus.outbound.get_nowait())
    return messages
