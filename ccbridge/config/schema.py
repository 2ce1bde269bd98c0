"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 ccbridge 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── agents        - Agent 配置列表（工作区、模型、权限模式、MCP 服务器等）与默认 Agent
├── bindings      - 路由绑定规则（渠道 / 用户 / 群组 → Agent），按顺序匹配
├── channels      - 消息渠道配置（Telegram / Discord），支持单机器人与多机器人两种形态
├── logging       - 日志级别与聊天记录（transcript）配置
└── database_path - SQLite 数据库文件路径

【单机器人 / 多机器人】
渠道的 bots 字段是一个带 mode 标签的联合类型（SingleBot | MultiBot），
加载时统一通过 ChannelConfig.bot_entries() 展开为 list[BotEntry]，
运行期代码只面对这一种形态。旧版配置格式由 loader._migrate_config 负责转换。
"""

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

DmPolicy = Literal["pairing", "allowlist", "open"]
PermissionMode = Literal["default", "acceptEdits", "plan", "bypassPermissions"]


# ==============================================================================
# Agent 配置
# ==============================================================================


class MCPServerConfig(BaseModel):
    """单个 MCP 服务器配置。stdio 类型使用 command/args 启动，sse 类型使用 url 连接。"""
    name: str = Field(min_length=1)
    command: str | None = None  # stdio 模式下的启动命令
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)  # 传给子进程的环境变量（键名原样保留）
    type: Literal["stdio", "sse"] = "stdio"
    url: str | None = None  # sse 模式下的服务地址


class AgentProfile(BaseModel):
    """
    Agent 配置档案。

    进程生命周期内不可变（frozen），只从外部配置创建，核心逻辑从不修改它。
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)  # 唯一标识，绑定规则通过它引用 Agent
    name: str = Field(min_length=1)  # 展示名称
    workspace: str = Field(min_length=1)  # 工作区根目录（Agent 的 cwd）
    model: str | None = None  # 模型名，为空时使用运行时默认模型
    system_prompt: str | None = None
    max_turns: int | None = Field(default=None, gt=0)  # 单次对话的最大轮次
    permission_mode: PermissionMode = "default"
    tools: list[str] | None = None  # 允许使用的工具（白名单）
    disallowed_tools: list[str] | None = None  # 禁止使用的工具（黑名单）
    mcp_servers: list[MCPServerConfig] = Field(default_factory=list)

    @property
    def workspace_path(self) -> Path:
        """展开 ~ 之后的工作区路径。"""
        return Path(self.workspace).expanduser()


def _default_agents() -> list[AgentProfile]:
    return [AgentProfile(id="default", name="Default Agent", workspace="~/.ccb/workspace")]


class AgentsConfig(BaseModel):
    """
    Agent 配置容器。

    JSON 中的键名为 "list"，为避免遮蔽内置 list 类型，Python 侧字段名为 agent_list。
    """
    model_config = ConfigDict(populate_by_name=True)

    default: str | None = None  # 默认 Agent ID（没有任何绑定匹配时使用）
    agent_list: list[AgentProfile] = Field(default_factory=_default_agents, alias="list", min_length=1)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "AgentsConfig":
        ids = [a.id for a in self.agent_list]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate agent ids: {', '.join(duplicates)}")
        return self


# ==============================================================================
# 路由绑定
# ==============================================================================


class BindingMatch(BaseModel):
    """绑定匹配条件。未指定的条件视为"匹配任意值"。"""
    channel: str | None = None  # 平台名，如 "telegram"
    peer: str | None = None  # 私聊对方 ID
    group: str | None = None  # 群组 / 频道 ID

    @property
    def is_empty(self) -> bool:
        return self.channel is None and self.peer is None and self.group is None


class AgentBinding(BaseModel):
    """路由绑定规则：满足 match 的消息交给 agent_id 指定的 Agent 处理。"""
    agent_id: str = Field(min_length=1)
    match: BindingMatch | None = None

    @property
    def is_catch_all(self) -> bool:
        """没有任何匹配条件的绑定（默认绑定）。"""
        return self.match is None or self.match.is_empty


# ==============================================================================
# 渠道配置
# ==============================================================================


class BotEntry(BaseModel):
    """
    单个机器人身份。

    id 只在多机器人部署中存在，会作为 chat key 的 botId 段。
    agent_id / dm_policy / allow_from 为空时继承渠道级配置。
    """
    id: str | None = None
    token: str = ""
    application_id: str | None = None  # 仅 Discord 使用
    agent_id: str | None = None  # 直接绑定：该机器人收到的所有消息都交给这个 Agent
    dm_policy: DmPolicy | None = None
    allow_from: list[str] | None = None


class SingleBot(BaseModel):
    """单机器人形态：渠道只有一个机器人身份，chat key 中不含 botId。"""
    mode: Literal["single"] = "single"
    token: str = ""
    application_id: str | None = None


class MultiBot(BaseModel):
    """多机器人形态：每个机器人都有自己的 id，chat key 中带 botId。"""
    mode: Literal["multi"] = "multi"
    bots: list[BotEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_ids(self) -> "MultiBot":
        seen: set[str] = set()
        for bot in self.bots:
            if not bot.id:
                raise ValueError("Every bot in multi-bot mode needs an id")
            if ":" in bot.id:
                raise ValueError(f"Bot id must not contain ':': {bot.id!r}")
            if bot.id in seen:
                raise ValueError(f"Duplicate bot id: {bot.id}")
            seen.add(bot.id)
        return self


BotConfig = Annotated[SingleBot | MultiBot, Field(discriminator="mode")]


class ChannelConfig(BaseModel):
    """
    单个消息渠道的配置（Telegram 与 Discord 共用）。

    dm_policy 决定未授权对话的处理方式：
    - pairing: 拒绝并下发配对码，由运维人员在 CLI 中批准（默认）
    - allowlist: 拒绝，必须由运维人员手动加入白名单
    - open: 所有人都可以使用
    """
    enabled: bool = False
    dm_policy: DmPolicy = "pairing"
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID 或用户名
    bots: BotConfig = Field(default_factory=SingleBot)

    @model_validator(mode="after")
    def _check_enabled_has_bot(self) -> "ChannelConfig":
        if self.enabled and not self.bot_entries():
            raise ValueError("A bot token (single mode) or a bots list (multi mode) is required when the channel is enabled")
        return self

    def bot_entries(self) -> list[BotEntry]:
        """将单机器人 / 多机器人两种形态统一展开为 BotEntry 列表。"""
        if isinstance(self.bots, MultiBot):
            return list(self.bots.bots)
        if not self.bots.token:
            return []
        return [BotEntry(token=self.bots.token, application_id=self.bots.application_id)]

    def get_bot(self, bot_id: str | None) -> BotEntry | None:
        for bot in self.bot_entries():
            if bot.id == bot_id:
                return bot
        return None

    def effective_access(self, bot: BotEntry | None = None) -> tuple[DmPolicy, list[str]]:
        """合并机器人级覆盖与渠道级默认值，返回 (dm_policy, allow_from)。"""
        policy = self.dm_policy
        allow_from = self.allow_from
        if bot is not None:
            if bot.dm_policy is not None:
                policy = bot.dm_policy
            if bot.allow_from is not None:
                allow_from = bot.allow_from
        return policy, list(allow_from)


class ChannelsConfig(BaseModel):
    """所有消息渠道的聚合配置，默认全部关闭。"""
    telegram: ChannelConfig = Field(default_factory=ChannelConfig)
    discord: ChannelConfig = Field(default_factory=ChannelConfig)

    def get(self, platform: str) -> ChannelConfig | None:
        return getattr(self, platform, None) if platform in ("telegram", "discord") else None


# ==============================================================================
# 日志配置
# ==============================================================================


class TranscriptConfig(BaseModel):
    """聊天记录（收发消息流水）配置。"""
    enabled: bool = False
    path: str = "~/.ccb/logs"  # 日志目录，按天生成 messages-YYYY-MM-DD.jsonl
    format: Literal["jsonl", "text"] = "jsonl"
    retention_days: int = Field(default=7, ge=1)  # 保留天数，超过的文件在 cleanup 时删除


class LoggingConfig(BaseModel):
    level: str = "INFO"  # loguru 日志级别
    transcript: TranscriptConfig = Field(default_factory=TranscriptConfig)


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    ccbridge 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: CCB_
    - 嵌套分隔符: __ (双下划线)
    - 示例: CCB_LOGGING__LEVEL=DEBUG 可覆盖 logging.level
    """
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    bindings: list[AgentBinding] = Field(default_factory=list)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database_path: str = "~/.ccb/bridge.db"

    @property
    def db_path(self) -> Path:
        """展开 ~ 之后的数据库路径。"""
        return Path(self.database_path).expanduser()

    def get_agent(self, agent_id: str) -> AgentProfile | None:
        for agent in self.agents.agent_list:
            if agent.id == agent_id:
                return agent
        return None

    model_config = ConfigDict(
        env_prefix="CCB_",
        env_nested_delimiter="__",
    )
