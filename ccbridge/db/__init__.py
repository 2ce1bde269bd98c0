"""持久化模块：基于 SQLite 的会话、配对请求与白名单存储。"""

from ccbridge.db.database import BridgeDatabase, utc_now_iso

__all__ = ["BridgeDatabase", "utc_now_iso"]
