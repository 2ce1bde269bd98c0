"""
ccbridge - 聊天平台与 AI Agent 会话之间的桥接框架

模块概述：
    本文件是 ccbridge 包的入口文件（__init__.py），定义了包的元信息。
    ccbridge 将 Telegram、Discord 等聊天平台上的对话（一个平台可以有多个机器人身份）
    桥接到可恢复的长期 Agent 会话上，并在消息到达 Agent 之前执行访问控制。

    整个框架的核心功能包括：
    - 统一的会话寻址方案（chat key）
    - 基于绑定规则的 Agent 路由
    - 可跨进程重启恢复的会话存储
    - 流式响应协议
    - 配对码 / 白名单安全机制
    - 聊天内斜杠命令
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🌉"
