"""Provider 抽象接口。

会话引擎不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：
open(context) 返回一个惰性的文本片段迭代器，只能消费一次。
消费方提前停止迭代（或调用 close）时，实现必须释放底层连接。
"""

from typing import Iterator, Protocol, Sequence

from chat_core.domain.models import ContextEntry


class CompletionStreamClient(Protocol):
    """流式补全客户端协议。"""

    name: str

    def open(self, context: Sequence[ContextEntry]) -> Iterator[str]:
        ...
