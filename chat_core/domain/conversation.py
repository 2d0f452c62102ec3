from dataclasses import dataclass, field, replace
from typing import Callable, List, Literal, Optional, Protocol
from uuid import uuid4

from .models import ContextEntry, Message, Role, SettingsRecord


DEFAULT_TITLE = "Untitled"

ChangeKind = Literal[
    "append",
    "content",
    "auxiliary",
    "title",
    "flush",
    "complete",
    "draft",
    "sendable",
    "polish",
    "explanation",
    "selection",
]


def new_conversation_id() -> str:
    return f"c-{uuid4().hex}"


@dataclass
class Conversation:
    id: str
    title: str = DEFAULT_TITLE
    transcript: List[Message] = field(default_factory=list)

    @property
    def is_blank(self) -> bool:
        """默认标题且没有任何消息，保存时会被跳过。"""
        return self.title == DEFAULT_TITLE and not self.transcript


@dataclass(frozen=True)
class ChangeEvent:
    """状态变更通知。index 仅对消息相关事件有效。"""

    kind: ChangeKind
    index: Optional[int] = None


Observer = Callable[[ChangeEvent], None]


class ConversationStore:
    """内存中的会话状态容器。

    外部只能通过这里的窄接口修改消息，不直接改 transcript 里的对象。
    除状态修改与观察者通知外没有其他副作用，持久化由 PersistenceGateway 负责。
    """

    def __init__(self, conversation: Optional[Conversation] = None):
        self._conv = conversation or Conversation(id=new_conversation_id())
        self._observers: List[Observer] = []

    @property
    def id(self) -> str:
        return self._conv.id

    @property
    def title(self) -> str:
        return self._conv.title

    def __len__(self) -> int:
        return len(self._conv.transcript)

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def notify(self, kind: ChangeKind, index: Optional[int] = None) -> None:
        event = ChangeEvent(kind=kind, index=index)
        for observer in list(self._observers):
            observer(event)

    # ---- 修改 ----

    def append_message(self, role: Role, content: str = "") -> int:
        self._conv.transcript.append(Message(role=role, content=content))
        index = len(self._conv.transcript) - 1
        self.notify("append", index)
        return index

    def set_message_content(self, index: int, text: str) -> None:
        self._at(index).content = text
        self.notify("content", index)

    def set_message_auxiliary(self, index: int, text: str) -> None:
        self._at(index).auxiliary = text
        self.notify("auxiliary", index)

    def set_title(self, title: str) -> None:
        self._conv.title = title
        self.notify("title")

    # ---- 读取 ----

    def message(self, index: int) -> Message:
        return replace(self._at(index))

    def messages(self) -> List[Message]:
        return [replace(m) for m in self._conv.transcript]

    def context(self) -> List[ContextEntry]:
        """把整段会话投影为 Provider 上下文，auxiliary 不发送。"""
        return [ContextEntry(role=m.role, content=m.content) for m in self._conv.transcript]

    def snapshot(self) -> Conversation:
        return Conversation(id=self._conv.id, title=self._conv.title, transcript=self.messages())

    def _at(self, index: int) -> Message:
        if index < 0 or index >= len(self._conv.transcript):
            raise IndexError(f"message index out of range: {index}")
        return self._conv.transcript[index]


class PersistenceGateway(Protocol):
    def load(self, conversation_id: str) -> Optional[Conversation]:
        ...

    def save(self, conversation: Conversation) -> bool:
        ...

    def ensure_settings(self) -> None:
        ...

    def load_settings(self) -> SettingsRecord:
        ...
