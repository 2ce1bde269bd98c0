"""
桥接编排模块 - 把渠道、会话、访问控制和命令连成一条处理链。

- app.py：build_bridge()，启动时组装全部协作对象
- loop.py：BridgeLoop，入站消息的主处理循环
- transcript.py：TranscriptLogger，按天落盘的聊天流水
"""

from ccbridge.bridge.app import Bridge, build_bridge
from ccbridge.bridge.loop import BridgeLoop
from ccbridge.bridge.transcript import TranscriptEntry, TranscriptLogger

__all__ = ["Bridge", "BridgeLoop", "TranscriptEntry", "TranscriptLogger", "build_bridge"]
