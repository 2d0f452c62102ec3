"""对话数据模型。

- Message: 会话记录中的一条消息（user/assistant），可附带一次副产物 auxiliary。
- ContextEntry: 发给补全接口的精简上下文（system/user/assistant）。
- SettingsRecord: 持久化的 settings.json 内容。
"""

from dataclasses import dataclass
from typing import Literal, Optional


# 会话记录中的角色；system 只出现在临时上下文里
Role = Literal["user", "assistant"]
ContextRole = Literal["system", "user", "assistant"]


@dataclass
class Message:
    """会话中的一条消息。

    - content: 主文本。assistant 消息在流式过程中逐步增长，user 消息创建后不变。
    - auxiliary: 翻译或纠错的结果。每条消息最多一次，一旦存在就不再允许新的副操作。
    """

    role: Role
    content: str
    auxiliary: Optional[str] = None

    @property
    def has_auxiliary(self) -> bool:
        return self.auxiliary is not None


@dataclass(frozen=True)
class ContextEntry:
    """发给 Provider 的单条上下文，不包含 auxiliary。"""

    role: ContextRole
    content: str

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class SettingsRecord:
    """settings.json 的内容，目前只有访问凭证。"""

    auth_key: Optional[str] = None
