"""
路由模块 - 会话寻址（chat key）与 Agent 绑定解析。

本模块包含两部分：
- chatkey.py：chat key 编解码器，所有协作方（渠道、数据库、CLI）必须在这个字符串格式上达成一致
- router.py：Router，按绑定规则决定由哪个 Agent 配置来服务某个对话

消息流向：
  渠道消息 → ChatKey（寻址） → Router.resolve()（选 Agent） → SessionManager（会话）
"""

from ccbridge.routing.chatkey import (
    DEFAULT_SESSION_NAME,
    ChatKey,
    decode_chat_key,
    encode_chat_key,
)
from ccbridge.routing.router import Router

__all__ = ["ChatKey", "DEFAULT_SESSION_NAME", "Router", "decode_chat_key", "encode_chat_key"]
