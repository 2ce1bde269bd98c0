"""
工具函数模块 - ccbridge 全局通用的辅助函数。

- helpers.py：路径、字符串、时间格式化
- logging.py：loguru 输出配置
"""

from ccbridge.utils.helpers import chunk_text, ensure_dir, format_age, get_data_path, get_workspace_path
from ccbridge.utils.logging import setup_logging

__all__ = ["chunk_text", "ensure_dir", "format_age", "get_data_path", "get_workspace_path", "setup_logging"]
