"""
路由器模块 - 决定由哪个 Agent 服务某个对话。

匹配规则：
1. 按配置顺序扫描绑定规则，第一个结构匹配的规则胜出
2. 规则中未指定的条件（channel / peer / group）视为匹配任意值
3. 没有规则匹配时使用默认 Agent：第一个无条件绑定，或 agents.default
4. 既没有匹配也没有默认 Agent 时抛出 NoAgentConfiguredError，不会随便挑一个 Agent
"""

from typing import TYPE_CHECKING, Iterable

from loguru import logger

from ccbridge.config.schema import AgentBinding, AgentProfile
from ccbridge.errors import NoAgentConfiguredError

if TYPE_CHECKING:
    from ccbridge.config.schema import Config


class Router:
    """
    绑定解析器。

    构造后只读：Agent 列表和绑定规则在进程生命周期内不变。
    """

    def __init__(
        self,
        agents: Iterable[AgentProfile],
        bindings: Iterable[AgentBinding] = (),
        default_agent: str | None = None,
    ):
        self._agents: dict[str, AgentProfile] = {}
        for agent in agents:
            self._agents[agent.id] = agent
        self._bindings = list(bindings)

        catch_all = next((b for b in self._bindings if b.is_catch_all), None)
        self._default_agent_id = catch_all.agent_id if catch_all else default_agent

    @classmethod
    def from_config(cls, config: "Config") -> "Router":
        return cls(config.agents.agent_list, config.bindings, config.agents.default)

    @property
    def default_agent_id(self) -> str | None:
        return self._default_agent_id

    @property
    def bindings(self) -> list[AgentBinding]:
        return list(self._bindings)

    def get_agent(self, agent_id: str) -> AgentProfile | None:
        """按 ID 获取 Agent 配置，不存在时返回 None。"""
        return self._agents.get(agent_id)

    def get_all_agents(self) -> list[AgentProfile]:
        return list(self._agents.values())

    def resolve(self, platform: str, peer_id: str, group_id: str | None = None) -> str:
        """
        解析应当服务该对话的 Agent ID。

        参数:
            platform: 平台名（如 "telegram"）
            peer_id: 发送者 ID
            group_id: 群组 ID，私聊时为 None

        返回:
            Agent ID（不保证对应的 Agent 存在，见 route()）

        异常:
            NoAgentConfiguredError: 没有绑定匹配且没有默认 Agent
        """
        for binding in self._bindings:
            if self._matches(binding, platform, peer_id, group_id):
                return binding.agent_id

        if self._default_agent_id is None:
            raise NoAgentConfiguredError(
                f"No binding matches {platform}:{group_id or peer_id} and no default agent is configured"
            )
        return self._default_agent_id

    def route(self, platform: str, peer_id: str, group_id: str | None = None) -> AgentProfile:
        """解析并返回 Agent 配置；绑定指向不存在的 Agent 时抛出 NoAgentConfiguredError。"""
        agent_id = self.resolve(platform, peer_id, group_id)
        agent = self._agents.get(agent_id)
        if agent is None:
            logger.error(f"Binding resolved to unknown agent '{agent_id}'")
            raise NoAgentConfiguredError(f"Agent '{agent_id}' is not configured")
        return agent

    @staticmethod
    def _matches(binding: AgentBinding, platform: str, peer_id: str, group_id: str | None) -> bool:
        match = binding.match
        if match is None:
            return True
        if match.channel is not None and match.channel != platform:
            return False
        if match.peer is not None and match.peer != peer_id:
            return False
        if match.group is not None and match.group != group_id:
            return False
        return True
