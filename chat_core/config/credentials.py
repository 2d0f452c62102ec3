"""访问凭证读取。

启动时从持久化的 settings.json 读取一次 authKey，之后只读；不提供刷新机制。
"""

from typing import Optional

from chat_core.domain.conversation import PersistenceGateway


class CredentialStore:
    def __init__(self, auth_key: Optional[str] = None):
        self._auth_key = auth_key or None

    @classmethod
    def load(cls, gateway: PersistenceGateway) -> "CredentialStore":
        record = gateway.load_settings()
        return cls(record.auth_key)

    @property
    def auth_key(self) -> Optional[str]:
        return self._auth_key

    @property
    def configured(self) -> bool:
        return self._auth_key is not None
