"""日志初始化：用 loguru 的 stderr sink 替换默认 sink。"""

import sys

from loguru import logger


def setup_logging(level: str = "INFO", colorize: bool | None = None) -> None:
    """
    重新配置 loguru 输出。

    参数:
        level: 日志级别（DEBUG / INFO / WARNING / ERROR）
        colorize: 是否输出颜色，None 时由 loguru 根据终端判断
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        colorize=colorize,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | <cyan>{name}</cyan> - {message}",
    )
