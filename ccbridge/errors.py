"""
异常定义模块 - ccbridge 的统一错误分类。

错误分类：
- MalformedKeyError：chat key 字符串格式错误（在边界处拒绝，绝不静默修正）
- NoAgentConfiguredError：配置漂移，找不到可用的 Agent（对单条消息是致命的，对进程不是）
- PairingNotFoundError / PairingExpiredError：配对码不存在 / 已过期（面向用户的不同提示）
- ExecutionError：Agent 执行端口在一轮对话中失败

注意："访问被拒绝"不是异常，而是 AccessDecision 的正常结果，调用方需要自行分支处理。
"""


class BridgeError(Exception):
    """ccbridge 所有业务异常的基类。"""


class MalformedKeyError(BridgeError, ValueError):
    """chat key 无法解析。"""

    def __init__(self, key: str, detail: str = ""):
        self.key = key
        message = f"Invalid chat key format: {key!r}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class NoAgentConfiguredError(BridgeError):
    """路由结果没有对应的 Agent 配置。"""


class PairingError(BridgeError):
    """配对流程失败的基类。"""

    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__(message)


class PairingNotFoundError(PairingError):
    """配对码从未存在或已经被使用。"""

    def __init__(self, code: str):
        super().__init__(code, "Invalid or expired pairing code")


class PairingExpiredError(PairingError):
    """配对码已超过有效期。"""

    def __init__(self, code: str):
        super().__init__(code, "Pairing code has expired")


class ExecutionError(BridgeError):
    """Agent 执行端口在流式输出过程中报错。"""
