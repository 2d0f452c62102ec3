"""流式片段聚合。

Aggregation 把一个片段序列折叠进某个写入目标（Target）：
每收到一个片段就追加到累加器、写回目标并通知观察者；序列结束时
再通知一次并标记完成。不做重试，流中断时目标保持已有的部分内容。
"""

import logging
from typing import Callable, Iterable, Optional, Protocol

from chat_core.domain.conversation import ChangeKind, ConversationStore
from chat_core.domain.exceptions import BusinessError
from chat_core.infrastructure.logging.logger import log_event


class StreamTarget(Protocol):
    """片段写入的位置：消息的 content/auxiliary，或临时缓冲区。"""

    def write(self, text: str) -> None:
        ...

    def flush(self) -> None:
        ...

    def complete(self) -> None:
        ...


class MessageContentTarget:
    def __init__(self, store: ConversationStore, index: int):
        self._store = store
        self.index = index

    def write(self, text: str) -> None:
        self._store.set_message_content(self.index, text)

    def flush(self) -> None:
        self._store.notify("flush", self.index)

    def complete(self) -> None:
        self._store.notify("complete", self.index)


class MessageAuxiliaryTarget(MessageContentTarget):
    def write(self, text: str) -> None:
        self._store.set_message_auxiliary(self.index, text)


class TextBuffer:
    """不进入会话记录的临时缓冲区（润色建议、选区解读）。"""

    def __init__(self, kind: ChangeKind, notify: Callable[[ChangeKind], None]):
        self.kind = kind
        self.text = ""
        self.visible = False
        self.streaming = False
        self._notify = notify

    def reset(self, visible: bool, streaming: bool = False) -> None:
        self.text = ""
        self.visible = visible
        self.streaming = streaming
        self.changed()

    def hide(self, clear: bool = False) -> None:
        self.visible = False
        if clear:
            self.text = ""
        self.changed()

    def changed(self) -> None:
        self._notify(self.kind)


class BufferTarget:
    def __init__(self, buffer: TextBuffer):
        self._buffer = buffer

    def write(self, text: str) -> None:
        self._buffer.text = text

    def flush(self) -> None:
        self._buffer.changed()

    def complete(self) -> None:
        self._buffer.streaming = False
        self._buffer.changed()


class Aggregation:
    """一次聚合过程，绑定一个目标。

    begin/feed/finish 可以由 runner 分步驱动（例如在 UI 线程里逐个投递），
    也可以直接调用 run() 在当前线程里一次跑完。
    """

    def __init__(
        self,
        target: StreamTarget,
        on_complete: Optional[Callable[[], None]] = None,
        log_ctx: Optional[dict] = None,
    ):
        self.target = target
        self.text = ""
        self.fragments = 0
        self.started = False
        self.done = False
        self.cancelled = False
        self._on_complete = on_complete
        self._log_ctx = dict(log_ctx or {})

    def begin(self) -> None:
        self.text = ""
        self.started = True

    def feed(self, fragment: str) -> None:
        if self.cancelled or self.done:
            return
        if not self.started:
            self.begin()
        self.text += fragment
        self.fragments += 1
        self.target.write(self.text)
        self.target.flush()

    def fail(self, error: BusinessError) -> None:
        log_event(
            logging.WARNING,
            "Stream aborted, keeping partial output",
            self._log_ctx,
            code=error.code,
            error=error.message,
            fragments=self.fragments,
        )

    def finish(self) -> None:
        if self.done:
            return
        self.done = True
        # 过期的聚合不再触碰目标，目标可能已被新的聚合接管
        if not self.cancelled:
            self.target.flush()
            self.target.complete()
        log_event(
            logging.INFO,
            "Aggregation finished",
            self._log_ctx,
            fragments=self.fragments,
            chars=len(self.text),
            cancelled=self.cancelled,
        )
        if self._on_complete is not None:
            self._on_complete()

    def cancel(self) -> None:
        """标记为过期：之后的片段被丢弃，runner 会停止拉取并关闭流。"""
        self.cancelled = True

    def run(self, fragments: Iterable[str]) -> str:
        self.begin()
        iterator = iter(fragments)
        try:
            for fragment in iterator:
                if self.cancelled:
                    break
                self.feed(fragment)
        except BusinessError as e:
            self.fail(e)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
            self.finish()
        return self.text
