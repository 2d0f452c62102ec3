import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import Message, SettingsRecord


SAVES_DIR = "saves"
SETTINGS_FILE = "settings.json"


class JsonPersistenceGateway:
    """每个会话一个 saves/<id>.json，外加全局 settings.json。

    不加锁，多个写入方同时写时以最后一次为准。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._saves = self._root / SAVES_DIR
        self._settings_path = self._root / SETTINGS_FILE

    def record_path(self, conversation_id: str) -> Path:
        return self._saves / f"{conversation_id}.json"

    # ---- 会话 ----

    def load(self, conversation_id: str) -> Optional[Conversation]:
        path = self.record_path(conversation_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            title, history = data["title"], data["history"]
            if not isinstance(title, str) or not isinstance(history, list):
                raise ValueError("title must be a string and history a list")
            return Conversation(
                id=conversation_id,
                title=title,
                transcript=[self._to_message(item) for item in history],
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e), conversation_id=conversation_id) from e

    def save(self, conversation: Conversation) -> bool:
        """写入会话记录；从未使用过的会话（默认标题且无消息）直接跳过。"""
        if conversation.is_blank:
            return False
        obj = {
            "title": conversation.title,
            "history": [self._from_message(m) for m in conversation.transcript],
        }
        self._write_json(self.record_path(conversation.id), obj)
        return True

    # ---- settings.json ----

    def ensure_settings(self) -> None:
        if not self._settings_path.exists():
            self._write_json(self._settings_path, {})

    def load_settings(self) -> SettingsRecord:
        self.ensure_settings()
        try:
            data = json.loads(self._settings_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BusinessError(code="SETTINGS_READ_ERROR", message=str(e))
        if not isinstance(data, dict):
            raise BusinessError(code="SETTINGS_READ_ERROR", message="settings.json is not an object")
        auth_key = data.get("authKey")
        return SettingsRecord(auth_key=auth_key if isinstance(auth_key, str) and auth_key else None)

    # ---- 内部 ----

    def _write_json(self, path: Path, obj: Dict[str, Any]) -> None:
        tmp_path = path.parent / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _from_message(message: Message) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content}
        if message.auxiliary is not None:
            payload["auxiliary"] = message.auxiliary
        return payload

    @staticmethod
    def _to_message(data: Dict[str, Any]) -> Message:
        role = data["role"]
        if role not in ("user", "assistant"):
            raise ValueError(f"unexpected role: {role!r}")
        # 旧版记录用 extra 字段保存副产物
        auxiliary = data.get("auxiliary", data.get("extra"))
        content = data["content"]
        if not isinstance(content, str) or not (auxiliary is None or isinstance(auxiliary, str)):
            raise ValueError("content and auxiliary must be strings")
        return Message(role=role, content=content, auxiliary=auxiliary)
