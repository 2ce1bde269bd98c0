"""
会话管理模块 - agent 会话的查找、创建、恢复与重置。

【架构定位】
- store.py：SessionStore，(chat key, 会话名) → agent 会话句柄 的持久化映射
- manager.py：SessionManager，结合 Router 和执行引擎完成一轮流式对话

会话行在第一次收到消息时以占位句柄创建，第一轮对话成功后写入真实句柄，
此后的消息都会用这个句柄恢复上下文，即使进程重启过。
"""

from ccbridge.session.manager import SessionManager, StreamChunk
from ccbridge.session.store import PLACEHOLDER_PREFIX, Session, SessionStore

__all__ = ["PLACEHOLDER_PREFIX", "Session", "SessionManager", "SessionStore", "StreamChunk"]
