"""Tests for binding resolution."""

import pytest

from ccbridge.config.schema import AgentBinding, AgentsConfig, BindingMatch, Config
from ccbridge.errors import NoAgentConfiguredError
from ccbridge.routing.router import Router

from conftest import make_agent


def binding(agent_id, **match):
    return AgentBinding(agent_id=agent_id, match=BindingMatch(**match) if match else None)


@pytest.fixture
def agents(tmp_path):
    return [make_agent(i, tmp_path) for i in ("alpha", "beta", "gamma")]


def test_first_matching_binding_wins(agents):
    router = Router(agents, [
        binding("alpha", peer="1"),
        binding("beta", channel="telegram"),
        binding("gamma"),
    ])
    assert router.resolve("telegram", "1") == "alpha"
    assert router.resolve("telegram", "2") == "beta"
    assert router.resolve("discord", "2") == "gamma"


def test_order_matters(agents):
    router = Router(agents, [binding("beta", channel="telegram"), binding("alpha", peer="1")])
    assert router.resolve("telegram", "1") == "beta"


def test_group_binding(agents):
    router = Router(agents, [binding("alpha", channel="telegram", group="555")], default_agent="beta")
    assert router.resolve("telegram", "9", "555") == "alpha"
    assert router.resolve("telegram", "9", "556") == "beta"
    assert router.resolve("telegram", "9") == "beta"


def test_catch_all_binding_is_the_default(agents):
    router = Router(agents, [binding("gamma")], default_agent="alpha")
    assert router.default_agent_id == "gamma"


def test_no_match_and_no_default_raises(agents):
    router = Router(agents, [binding("alpha", channel="discord")])
    with pytest.raises(NoAgentConfiguredError):
        router.resolve("telegram", "1")


def test_route_to_unknown_agent_raises(agents):
    router = Router(agents, [binding("missing")])
    assert router.resolve("telegram", "1") == "missing"
    with pytest.raises(NoAgentConfiguredError):
        router.route("telegram", "1")


def test_route_returns_profile(agents):
    router = Router(agents, default_agent="beta")
    assert router.route("telegram", "1").id == "beta"
    assert router.get_agent("gamma").name == "Gamma Agent"
    assert router.get_agent("nope") is None
    assert [a.id for a in router.get_all_agents()] == ["alpha", "beta", "gamma"]


def test_from_config(agents):
    config = Config(
        agents=AgentsConfig(default="alpha", agent_list=agents),
        bindings=[binding("beta", peer="7")],
    )
    router = Router.from_config(config)
    assert router.resolve("telegram", "7") == "beta"
    assert router.resolve("telegram", "8") == "alpha"
