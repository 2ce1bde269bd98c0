"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 ccbridge 配置文件的加载、保存和格式转换：
- 配置目录默认为 ~/.ccb（可通过环境变量 CCB_HOME 覆盖）
- 配置文件默认路径: ~/.ccb/config.json
- 配置文件使用 camelCase（驼峰命名），Python 内部使用 snake_case（下划线命名）
- 加载时自动将 camelCase → snake_case，保存时自动将 snake_case → camelCase
- 支持旧版配置格式的自动迁移（渠道级 botToken / token、裸 bots 数组）
"""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from ccbridge.config.schema import AgentProfile, AgentsConfig, Config

# 这些键下面的字典内容是用户数据（如环境变量名），键名不做大小写转换
_VERBATIM_KEYS = {"env"}


def get_config_dir() -> Path:
    """获取配置目录：$CCB_HOME 或 ~/.ccb"""
    home = os.environ.get("CCB_HOME")
    return Path(home).expanduser() if home else Path.home() / ".ccb"


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.ccb/config.json"""
    return get_config_dir() / "config.json"


def load_config(config_path: Path | None = None, strict: bool = False) -> Config:
    """
    从 JSON 文件加载配置，若文件不存在则返回默认配置。

    加载流程：
    1. 确定配置文件路径（传入的路径 或 默认路径）
    2. 读取 JSON 文件内容
    3. 执行旧版配置格式迁移（_migrate_config）
    4. 将 camelCase 键名转换为 snake_case（convert_keys）
    5. 使用 Pydantic 的 model_validate 进行类型验证和反序列化

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。
        strict: 为 True 时配置文件损坏直接抛出异常，否则降级为默认配置。

    返回:
        Config 配置对象实例
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValidationError) as e:
            if strict:
                raise
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    将配置对象保存为 JSON 文件（camelCase 键名，None 值省略）。

    参数:
        config: 要保存的配置对象
        config_path: 可选的保存路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True, exclude_none=True)
    data = convert_to_camel(data)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def create_default_config(config_path: Path | None = None, workspace: str | None = None) -> Config:
    """
    生成一份可以直接编辑的默认配置并写入磁盘。

    默认配置包含一个 Agent（工作区为 ~/.ccb/workspace 或传入的目录），
    所有渠道关闭，私聊策略为 pairing。
    """
    agent = AgentProfile(
        id="default",
        name="Default Agent",
        workspace=workspace or str(get_config_dir() / "workspace"),
    )
    config = Config(agents=AgentsConfig(default="default", agent_list=[agent]))
    save_config(config, config_path)
    return config


def _migrate_config(data: dict) -> dict:
    """
    旧版配置格式迁移。

    迁移规则（作用于 camelCase 原始数据）：
    1. channels.<name>.botToken / token 位于渠道级 → bots = {mode: single, token}
    2. channels.<name>.bots 为裸数组 → bots = {mode: multi, bots: [...]}
    3. 多机器人条目中的 botToken → token（Telegram 旧字段名）

    参数:
        data: 原始配置字典

    返回:
        迁移后的配置字典
    """
    channels = data.get("channels") or {}
    for name, channel in channels.items():
        if not isinstance(channel, dict):
            continue

        bot_token = channel.pop("botToken", None)
        token = channel.pop("token", None)
        legacy_token = bot_token or token
        application_id = channel.pop("applicationId", None)
        bots = channel.get("bots")

        if isinstance(bots, list):
            for bot in bots:
                if isinstance(bot, dict) and "botToken" in bot and "token" not in bot:
                    bot["token"] = bot.pop("botToken")
            channel["bots"] = {"mode": "multi", "bots": bots}
            if legacy_token:
                logger.warning(f"channels.{name}: both a channel token and a bots list are set, using the bots list")
        elif bots is None and legacy_token:
            single = {"mode": "single", "token": legacy_token}
            if application_id:
                single["applicationId"] = application_id
            channel["bots"] = single
    return data


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。
    示例: {"maxTurns": 20} → {"max_turns": 20}
    """
    if isinstance(data, dict):
        return {
            camel_to_snake(k): (v if k in _VERBATIM_KEYS else convert_keys(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """
    递归地将字典中所有 snake_case 键名转换为 camelCase。
    示例: {"max_turns": 20} → {"maxTurns": 20}
    """
    if isinstance(data, dict):
        return {
            snake_to_camel(k): (v if k in _VERBATIM_KEYS else convert_to_camel(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "systemPrompt" → "system_prompt", "dmPolicy" → "dm_policy"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """
    将 snake_case 字符串转换为 camelCase。
    例: "system_prompt" → "systemPrompt"
    """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
