"""
命令注册表模块 (commands/registry.py)

模块职责：
    解析以 "/" 开头的聊天命令，并把它分发给注册过的处理函数。

解析规则：
    - 去掉首尾空白后必须以 "/" 开头
    - 在第一个空白处切分命令与参数，命令统一转小写
    - 去掉命令末尾的 "@机器人名" 后缀（Telegram 群组里的提及写法）
    - 参数按任意空白切分

未知命令不会抛异常，dispatch() 返回 False，由外层循环统一回复"未知命令"。
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from loguru import logger

from ccbridge.bus.events import InboundMessage


@dataclass
class ParsedCommand:
    command: str
    args: list[str] = field(default_factory=list)
    raw_args: str = ""


@dataclass
class CommandContext:
    """
    命令执行上下文。

    属性:
        command: 命令名（小写，不含 "/"）
        args: 参数列表
        raw_args: 原始参数字符串
        message: 触发命令的入站消息
        reply: 回复函数，发送文本到来源对话
        agent_id: 机器人级直接绑定的 Agent，None 时由 Router 决定
    """

    command: str
    args: list[str]
    message: InboundMessage
    reply: Callable[[str], Awaitable[None]]
    raw_args: str = ""
    agent_id: str | None = None

    @property
    def chat_key(self) -> str:
        return self.message.chat_key


CommandHandler = Callable[[CommandContext], Awaitable[None]]


@dataclass
class CommandDefinition:
    name: str
    description: str
    handler: CommandHandler
    aliases: tuple[str, ...] = ()
    usage: str | None = None


class CommandRegistry:
    """
    命令注册表。

    命令名和别名共用一个查找表；同名注册时后注册的覆盖先注册的。
    """

    def __init__(self):
        self._commands: dict[str, CommandDefinition] = {}

    @staticmethod
    def parse(text: str) -> ParsedCommand | None:
        """解析命令文本；不是命令时返回 None。"""
        trimmed = text.strip()
        if not trimmed.startswith("/"):
            return None

        pieces = trimmed[1:].split(maxsplit=1)
        if not pieces:
            return None
        head = pieces[0]
        rest = pieces[1] if len(pieces) > 1 else ""

        command = head.lower().split("@", 1)[0]
        if not command:
            return None
        raw_args = rest.strip()
        return ParsedCommand(command=command, args=raw_args.split(), raw_args=raw_args)

    def register(self, definition: CommandDefinition) -> None:
        for name in (definition.name, *definition.aliases):
            key = name.lower()
            if key in self._commands:
                logger.debug(f"Command /{key} re-registered")
            self._commands[key] = definition

    def get(self, name: str) -> CommandDefinition | None:
        return self._commands.get(name.lower())

    def has(self, name: str) -> bool:
        return name.lower() in self._commands

    def all(self) -> list[CommandDefinition]:
        """返回所有命令定义（去掉别名重复，保持注册顺序）。"""
        seen: set[str] = set()
        result = []
        for definition in self._commands.values():
            if definition.name not in seen:
                seen.add(definition.name)
                result.append(definition)
        return result

    def generate_help(self) -> str:
        lines = ["Available commands:", ""]
        for definition in self.all():
            usage = f" {definition.usage}" if definition.usage else ""
            lines.append(f"/{definition.name}{usage} - {definition.description}")
            if definition.aliases:
                lines.append(f"  Aliases: {', '.join('/' + a for a in definition.aliases)}")
        return "\n".join(lines)

    async def dispatch(self, ctx: CommandContext) -> bool:
        """
        执行命令。

        返回:
            命令已注册并执行时返回 True；未知命令返回 False。处理函数抛出的异常原样向上传递。
        """
        definition = self.get(ctx.command)
        if definition is None:
            return False
        await definition.handler(ctx)
        return True
