"""Chat Core 顶层包。

该包提供流式聊天客户端的核心实现，包括配置加载、领域模型、
Provider 流式适配、片段聚合与会话状态引擎、以及会话的持久化存储。
"""

from chat_core.api.service import close_session, open_session

__all__ = ["open_session", "close_session"]
