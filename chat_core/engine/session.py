"""会话引擎。

ChatSession 把 UI 的操作（发送、翻译、纠错、润色、解读）转换成流式子请求，
并决定每个流写入哪个位置：

- send: 追加 user 消息，再把回复聚合进新追加的 assistant 消息的 content。
- translate / correct: 聚合进指定消息的 auxiliary，每条消息只允许一次。
- polish: 聚合进临时的润色缓冲区，可接受（替换草稿）或丢弃。
- explain: 聚合进临时的解读缓冲区，任何新的选区事件都会清空它。

send 期间只禁止再次 send；其他操作写入互不相干的位置，不做串行化。
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set
from uuid import uuid4

from chat_core.domain.conversation import ChangeEvent, ChangeKind, ConversationStore, Observer
from chat_core.domain.models import ContextEntry
from chat_core.engine.aggregator import (
    Aggregation,
    BufferTarget,
    MessageAuxiliaryTarget,
    MessageContentTarget,
    StreamTarget,
    TextBuffer,
)
from chat_core.engine.runner import StreamRunner, run_inline
from chat_core.infrastructure.logging.logger import log_event
from chat_core.prompts import PromptKind, load_system_prompt
from chat_core.providers.base import CompletionStreamClient


@dataclass(frozen=True)
class Selection:
    """UI 给出的选区：选中的文本与其所在节点的完整文本。"""

    text: str
    context: str


class ChatSession:
    def __init__(
        self,
        store: ConversationStore,
        client: CompletionStreamClient,
        runner: Optional[StreamRunner] = None,
        locale: str = "zh",
    ):
        self.store = store
        self._client = client
        self._runner = runner or run_inline
        self._locale = locale
        self._observers: List[Observer] = []

        self.draft = ""
        self.sendable = True
        self.polish_buffer = TextBuffer("polish", self._notify)
        self.explanation = TextBuffer("explanation", self._notify)
        self.selection: Optional[Selection] = None
        self.explain_available = False

        self._polish_flow: Optional[Aggregation] = None
        self._explain_flow: Optional[Aggregation] = None
        self._active: Set[Aggregation] = set()
        self._log_ctx: Dict[str, Any] = {"conversation_id": store.id}

        store.subscribe(self._forward)

    # ---- 观察者 ----

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def _notify(self, kind: ChangeKind, index: Optional[int] = None) -> None:
        self._forward(ChangeEvent(kind=kind, index=index))

    def _forward(self, event: ChangeEvent) -> None:
        for observer in list(self._observers):
            observer(event)

    # ---- 草稿与标题 ----

    def set_draft(self, text: str) -> None:
        self.draft = text
        self._notify("draft")

    def set_title(self, title: str) -> None:
        self.store.set_title(title)

    @property
    def can_send(self) -> bool:
        return self.sendable and bool(self.draft)

    @property
    def can_polish(self) -> bool:
        return bool(self.draft)

    # ---- 主发送 ----

    def send(self) -> bool:
        if not self.can_send:
            return False
        text = self.draft
        self.store.append_message("user", text)
        self.set_draft("")
        self._set_sendable(False)

        context = self.store.context()
        index = self.store.append_message("assistant", "")
        self._start(
            "send",
            context,
            MessageContentTarget(self.store, index),
            on_complete=lambda: self._set_sendable(True),
            message_index=index,
        )
        return True

    def _set_sendable(self, value: bool) -> None:
        self.sendable = value
        self._notify("sendable")

    # ---- 消息副操作 ----

    def available_transform(self, index: int) -> Optional[PromptKind]:
        """assistant 消息可翻译，user 消息可纠错；已有 auxiliary 时都不可用。"""
        message = self.store.message(index)
        if message.has_auxiliary:
            return None
        return "translate" if message.role == "assistant" else "correct"

    def translate(self, index: int) -> bool:
        return self._transform("translate", index)

    def correct(self, index: int) -> bool:
        return self._transform("correct", index)

    def _transform(self, kind: PromptKind, index: int) -> bool:
        message = self.store.message(index)
        if message.has_auxiliary:
            log_event(logging.INFO, "Auxiliary already set, transform rejected", self._log_ctx, kind=kind, message_index=index)
            return False
        context = [
            ContextEntry(role="system", content=self._prompt(kind)),
            ContextEntry(role="user", content=message.content),
        ]
        self._start(kind, context, MessageAuxiliaryTarget(self.store, index), message_index=index)
        return True

    # ---- 润色 ----

    def polish(self) -> bool:
        if not self.can_polish:
            return False
        if self._polish_flow is not None:
            self._polish_flow.cancel()
        self.polish_buffer.reset(visible=True, streaming=True)
        context = [
            ContextEntry(role="system", content=self._prompt("polish")),
            ContextEntry(role="user", content=self.draft),
        ]
        self._polish_flow = self._start("polish", context, BufferTarget(self.polish_buffer))
        return True

    def accept_polish(self) -> bool:
        # 建议已被放弃或从未出现时，不能覆盖用户之后输入的草稿
        if not self.polish_buffer.visible:
            return False
        self._stop_polish()
        self.set_draft(self.polish_buffer.text)
        self.polish_buffer.hide()
        return True

    def discard_polish(self) -> None:
        self._stop_polish()
        self.polish_buffer.hide(clear=True)

    def _stop_polish(self) -> None:
        if self._polish_flow is not None:
            self._polish_flow.cancel()
            self._polish_flow = None

    # ---- 选区解读 ----

    def select(self, selected_text: Optional[str], context_text: Optional[str] = None) -> None:
        """选区变化。None 或空文本表示选区无效（跨节点或未选中）。"""
        if self._explain_flow is not None:
            self._explain_flow.cancel()
            self._explain_flow = None
        self.explanation.hide(clear=True)
        if selected_text:
            self.selection = Selection(text=selected_text, context=context_text or "")
        else:
            self.selection = None
        self.explain_available = self.selection is not None
        self._notify("selection")

    def explain(self) -> bool:
        if self.selection is None:
            return False
        if self._explain_flow is not None:
            self._explain_flow.cancel()
        self.explain_available = False
        self._notify("selection")
        self.explanation.reset(visible=True, streaming=True)
        context = [
            ContextEntry(role="system", content=self._prompt("explain")),
            ContextEntry(role="user", content=self.selection.text),
            ContextEntry(role="user", content=self.selection.context),
        ]
        self._explain_flow = self._start("explain", context, BufferTarget(self.explanation))
        return True

    # ---- 关闭 ----

    def cancel_streams(self) -> int:
        """取消所有仍在进行的流，返回被取消的数量。窗口关闭前调用。"""
        active = list(self._active)
        for aggregation in active:
            aggregation.cancel()
        self._polish_flow = None
        self._explain_flow = None
        if active:
            log_event(logging.INFO, "Cancelled in-flight streams", self._log_ctx, count=len(active))
        return len(active)

    # ---- 内部 ----

    def _prompt(self, kind: PromptKind) -> str:
        return load_system_prompt(kind, self._locale)

    def _start(
        self,
        kind: str,
        context: Sequence[ContextEntry],
        target: StreamTarget,
        on_complete: Optional[Callable[[], None]] = None,
        message_index: Optional[int] = None,
    ) -> Aggregation:
        log_ctx = dict(self._log_ctx, trace_id=f"tr-{uuid4().hex}", kind=kind)
        if message_index is not None:
            log_ctx["message_index"] = message_index
        log_event(logging.INFO, "Starting stream", log_ctx, context_size=len(context))

        def done() -> None:
            self._active.discard(aggregation)
            if on_complete is not None:
                on_complete()

        aggregation = Aggregation(target, on_complete=done, log_ctx=log_ctx)
        self._active.add(aggregation)
        self._runner(self._client.open(context), aggregation)
        return aggregation
