"""流式聚合与会话状态引擎。"""

from chat_core.engine.aggregator import Aggregation, TextBuffer
from chat_core.engine.runner import ThreadedStreamRunner, run_inline
from chat_core.engine.session import ChatSession

__all__ = ["Aggregation", "TextBuffer", "ThreadedStreamRunner", "run_inline", "ChatSession"]
