"""
工具函数集合 - ccbridge 全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path, get_workspace_path
- 字符串工具：truncate_string, chunk_text
- 时间工具：format_age, format_timestamp
"""

from datetime import datetime, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """确保目录存在，不存在则递归创建，返回原路径。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 ccbridge 数据目录（与配置目录相同，默认 ~/.ccb）。自动创建不存在的目录。"""
    from ccbridge.config.loader import get_config_dir
    return ensure_dir(get_config_dir())


def get_workspace_path(workspace: str | None = None) -> Path:
    """
    获取工作空间路径（展开 ~ 并自动创建）。

    参数:
        workspace: 自定义路径，None 时使用 <数据目录>/workspace
    """
    path = Path(workspace).expanduser() if workspace else get_data_path() / "workspace"
    return ensure_dir(path)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """截断字符串，超长时以 suffix 结尾，总长度不超过 max_len。"""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def chunk_text(text: str, limit: int) -> list[str]:
    """
    把长文本切成不超过 limit 的片段，尽量在换行处断开。

    平台单条消息有长度上限（Telegram 4096，Discord 2000）。
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks


def format_age(moment: datetime, now: datetime | None = None) -> str:
    """把时间格式化为相对描述，如 "just now"、"5m ago"、"3h ago"、"2d ago"。"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    minutes = int((now - moment).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def format_timestamp(moment: datetime) -> str:
    """本地时区的 "YYYY-MM-DD HH:MM" 格式。"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone().strftime("%Y-%m-%d %H:%M")
