"""对外 API 服务模块。

负责启动时读取一次凭证、打开/关闭会话：
打开时若存在持久化记录则加载，否则以默认标题新建；关闭时保存快照。
"""

import logging
from typing import Optional

from chat_core.config.credentials import CredentialStore
from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation, ConversationStore, PersistenceGateway, new_conversation_id
from chat_core.engine.runner import StreamRunner
from chat_core.engine.session import ChatSession
from chat_core.infrastructure.logging.logger import log_event
from chat_core.infrastructure.storage.json_store import JsonPersistenceGateway
from chat_core.providers import create_provider
from chat_core.providers.base import CompletionStreamClient


_gateway: Optional[PersistenceGateway] = None
_credentials: Optional[CredentialStore] = None


def get_gateway() -> PersistenceGateway:
    """获取默认的持久化网关（单例）。"""
    global _gateway
    if _gateway is None:
        _gateway = JsonPersistenceGateway(root=settings.storage_root)
    return _gateway


def get_credentials() -> CredentialStore:
    """启动时读取一次 settings.json 中的凭证，之后不再刷新。"""
    global _credentials
    if _credentials is None:
        _credentials = CredentialStore.load(get_gateway())
        log_event(logging.INFO, "Credentials loaded", {}, configured=_credentials.configured)
    return _credentials


def open_session(
    conversation_id: Optional[str] = None,
    *,
    runner: Optional[StreamRunner] = None,
    client: Optional[CompletionStreamClient] = None,
    gateway: Optional[PersistenceGateway] = None,
) -> ChatSession:
    """打开一个会话。

    Args:
        conversation_id: 会话ID（可选，不提供则生成新的）
        runner: 流的驱动方式（默认在当前线程内同步执行）
        client: 补全客户端（默认按配置创建）
        gateway: 持久化网关（默认 JSON 文件）

    Raises:
        BusinessError: 已有记录无法解析时
    """
    gateway = gateway or get_gateway()
    cid = conversation_id or new_conversation_id()
    conv = gateway.load(cid)
    if conv is None:
        conv = Conversation(id=cid)
        log_event(logging.INFO, "Created new conversation", {"conversation_id": cid})
    else:
        log_event(
            logging.INFO,
            "Loaded conversation",
            {"conversation_id": cid},
            message_count=len(conv.transcript),
        )
    client = client or create_provider(get_credentials())
    return ChatSession(ConversationStore(conv), client, runner=runner)


def close_session(session: ChatSession, gateway: Optional[PersistenceGateway] = None) -> bool:
    """会话结束时保存快照；返回是否真正写入。"""
    gateway = gateway or get_gateway()
    snapshot = session.store.snapshot()
    saved = gateway.save(snapshot)
    log_event(
        logging.INFO,
        "Conversation saved" if saved else "Blank conversation skipped",
        {"conversation_id": snapshot.id},
        message_count=len(snapshot.transcript),
    )
    return saved
