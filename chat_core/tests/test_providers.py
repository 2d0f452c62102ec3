import pytest

from chat_core.config.credentials import CredentialStore
from chat_core.domain.exceptions import ValidationError
from chat_core.providers import create_provider
from chat_core.providers.glm_client import GlmClient
from chat_core.providers.registry import GLM_CONFIG, get_provider_config


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "glm"
        http_timeout = 1.0
        glm_base_url = "https://open.bigmodel.cn/api/paas/v4"

    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider(CredentialStore("k"))
    assert isinstance(provider, GlmClient)


def test_create_provider_unknown():
    with pytest.raises(ValidationError):
        create_provider(CredentialStore(None), "kimi")


def test_registry_resolves_logical_model():
    assert get_provider_config("GLM") is GLM_CONFIG
    assert GLM_CONFIG.resolve_model("chat") == "glm-4-plus"
    assert GLM_CONFIG.resolve_model("glm-4-air") == "glm-4-air"


def test_empty_auth_key_counts_as_missing():
    assert not CredentialStore("").configured
    assert CredentialStore("abc").auth_key == "abc"


def test_create_provider_resolves_through_registry(monkeypatch):
    class DummySettings:
        default_provider = "GLM"
        default_model = "chat"
        http_timeout = 1.0
        glm_base_url = None

    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider(CredentialStore("k"))
    assert provider._provider is GLM_CONFIG
    assert provider._build_payload([])["model"] == "glm-4-plus"
