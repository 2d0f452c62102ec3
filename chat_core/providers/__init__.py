"""LLM Provider 集成层。

该包下的模块负责：
- 定义流式补全客户端协议 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (glm_client)。
"""

from typing import Optional

from chat_core.config.credentials import CredentialStore
from chat_core.config.settings import settings
from chat_core.domain.exceptions import ValidationError
from chat_core.providers.base import CompletionStreamClient
from chat_core.providers.glm_client import GlmClient
from chat_core.providers.registry import get_provider_config


_CLIENTS = {
    "glm": GlmClient,
}


def create_provider(credentials: CredentialStore, name: Optional[str] = None) -> CompletionStreamClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = name or getattr(settings, "default_provider", "glm")
    try:
        config = get_provider_config(provider_name)
    except KeyError as e:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name}") from e
    return _CLIENTS[config.name](credentials, settings, config)
