"""
聊天内命令模块 (commands)

- registry.py：CommandRegistry，解析 "/command args" 文本并分发给已注册的处理函数
- handlers.py：内置命令（/new、/sessions、/session、/status、/help 等）
"""

from ccbridge.commands.handlers import register_builtin_commands
from ccbridge.commands.registry import CommandContext, CommandDefinition, CommandRegistry, ParsedCommand

__all__ = [
    "CommandContext",
    "CommandDefinition",
    "CommandRegistry",
    "ParsedCommand",
    "register_builtin_commands",
]
