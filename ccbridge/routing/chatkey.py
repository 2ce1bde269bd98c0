"""
chat key 编解码模块 - 对话的规范化标识字符串。

chat key 由冒号分隔的若干段组成，支持四种结构（以 telegram 为例）：

    单机器人私聊：  telegram:<peerId>[:<session>]
    单机器人群组：  telegram:group:<groupId>[:<session>]
    多机器人私聊：  telegram:<botId>:<peerId>[:<session>]
    多机器人群组：  telegram:<botId>:group:<groupId>[:<session>]

discord 使用 "channel" 作为群组标记，其余平台使用 "group"。
默认会话名 "main" 在编码时省略。

【多机器人 / 单机器人的区分】
解码时通过结构前瞻判断：第二段是群组标记时为单机器人群组，第三段是群组标记时为多机器人群组。
私聊 key 有四段时必然带 botId；三段时只有"第二段非数字且第三段为数字"才视为 botId + peerId，
其余情况按单机器人 peerId + 会话名解析。

已知局限：纯数字的 botId 会被误判为单机器人格式下的 peerId，多机器人私聊的 peerId
若不是数字且未带会话名也会被误判。目前没有转义机制，部署时应使用非数字的 botId。
"""

from dataclasses import dataclass

from ccbridge.errors import MalformedKeyError

DEFAULT_SESSION_NAME = "main"
SEPARATOR = ":"
GROUP_MARKERS = ("group", "channel")


def group_marker(platform: str) -> str:
    """获取平台的群组标记段（discord 为 "channel"，其他平台为 "group"）。"""
    return "channel" if platform == "discord" else "group"


def _is_numeric(segment: str) -> bool:
    # telegram 群组 ID 为负数，如 -1001234567890
    return segment.lstrip("-").isdigit()


def _normalize_session(name: str | None) -> str | None:
    if not name or name == DEFAULT_SESSION_NAME:
        return None
    return name


@dataclass(frozen=True)
class ChatKey:
    """
    chat key 的结构化表示（值对象，不可变）。

    属性:
        platform: 平台名（如 "telegram"、"discord"）
        peer_id: 私聊对方 ID 或群组 ID
        bot_id: 多机器人部署下的机器人标识，单机器人时为 None
        is_group: 是否为群组 / 频道对话
        session_name: 命名子会话，默认会话 "main" 统一规范为 None
    """

    platform: str
    peer_id: str
    bot_id: str | None = None
    is_group: bool = False
    session_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "session_name", _normalize_session(self.session_name))
        for label, value in (
            ("platform", self.platform),
            ("peer_id", self.peer_id),
            ("bot_id", self.bot_id),
            ("session_name", self.session_name),
        ):
            if value is None:
                continue
            if not value or SEPARATOR in value:
                raise MalformedKeyError(str(value), f"{label} must be non-empty and contain no ':'")
        # 任何一段等于群组标记都会让解码走错分支
        marker = group_marker(self.platform)
        for label, value in (
            ("bot_id", self.bot_id),
            ("peer_id", self.peer_id),
            ("session_name", self.session_name),
        ):
            if value == marker:
                raise MalformedKeyError(value, f"{label} collides with the group marker")

    @property
    def session(self) -> str:
        """实际会话名（未命名时为 "main"）。"""
        return self.session_name or DEFAULT_SESSION_NAME

    @property
    def base(self) -> "ChatKey":
        """去掉会话名之后的 chat key。"""
        return ChatKey(self.platform, self.peer_id, self.bot_id, self.is_group)

    def with_session(self, name: str | None) -> "ChatKey":
        return ChatKey(self.platform, self.peer_id, self.bot_id, self.is_group, name)

    def encode(self) -> str:
        parts = [self.platform]
        if self.bot_id:
            parts.append(self.bot_id)
        if self.is_group:
            parts.append(group_marker(self.platform))
        parts.append(self.peer_id)
        if self.session_name:
            parts.append(self.session_name)
        return SEPARATOR.join(parts)

    def __str__(self) -> str:
        return self.encode()


def encode_chat_key(
    platform: str,
    peer_id: str,
    *,
    bot_id: str | None = None,
    is_group: bool = False,
    session_name: str | None = None,
) -> str:
    """
    构造 chat key 字符串。

    参数:
        platform: 平台名
        peer_id: 私聊对方 ID 或群组 ID
        bot_id: 多机器人部署下的机器人标识
        is_group: 是否为群组
        session_name: 命名会话（"main" 会被省略）

    返回:
        编码后的 chat key，如 "telegram:bot1:group:555:work"
    """
    return ChatKey(platform, str(peer_id), bot_id, is_group, session_name).encode()


def decode_chat_key(key: str) -> ChatKey:
    """
    解析 chat key 字符串。

    参数:
        key: chat key 字符串

    返回:
        ChatKey 结构

    异常:
        MalformedKeyError: 少于两段、含空段，或段数与任何已知结构都不匹配
    """
    parts = key.split(SEPARATOR)
    if len(parts) < 2 or any(not p for p in parts):
        raise MalformedKeyError(key)

    platform = parts[0]
    marker = group_marker(platform)

    if parts[1] == marker:
        # 单机器人群组：platform:group:groupId[:session]
        bot_id, is_group, rest = None, True, parts[2:]
    elif len(parts) >= 3 and parts[2] == marker:
        # 多机器人群组：platform:botId:group:groupId[:session]
        bot_id, is_group, rest = parts[1], True, parts[3:]
    elif len(parts) == 4 or (
        len(parts) == 3 and not _is_numeric(parts[1]) and _is_numeric(parts[2])
    ):
        # 多机器人私聊：platform:botId:peerId[:session]
        bot_id, is_group, rest = parts[1], False, parts[2:]
    else:
        # 单机器人私聊：platform:peerId[:session]（数字 botId 也会落到这里）
        bot_id, is_group, rest = None, False, parts[1:]

    if not 1 <= len(rest) <= 2:
        raise MalformedKeyError(key, "unexpected number of segments")

    peer_id = rest[0]
    session_name = rest[1] if len(rest) == 2 else None
    return ChatKey(platform, peer_id, bot_id, is_group, session_name)
