"""
配置模块 (config)
================
本模块是 ccbridge 的配置系统入口，负责：
1. 定义配置数据模型（schema.py）：使用 Pydantic 定义 Agent、绑定、渠道、日志等配置项
2. 加载/保存配置文件（loader.py）：从 JSON 文件读取配置，支持 camelCase ↔ snake_case 自动转换
"""

from ccbridge.config.loader import get_config_dir, get_config_path, load_config, save_config
from ccbridge.config.schema import AgentBinding, AgentProfile, BotEntry, ChannelConfig, Config

__all__ = [
    "AgentBinding",
    "AgentProfile",
    "BotEntry",
    "ChannelConfig",
    "Config",
    "get_config_dir",
    "get_config_path",
    "load_config",
    "save_config",
]
