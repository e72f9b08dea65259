from deepseek_core.providers import create_client
from deepseek_core.providers.deepseek_client import AsyncDeepSeekClient, DeepSeekClient
from deepseek_core.providers.registry import DEEPSEEK_CONFIG


class DummySettings:
    deepseek_api_key = "sk-dummy-0123456789"
    deepseek_base_url = "https://api.deepseek.com/v1"
    http_timeout = 5.0
    allowed_models = ("deepseek-chat",)
    default_model = "deepseek-chat"

    def require_api_key(self):
        return self.deepseek_api_key


def test_create_client_default(monkeypatch):
    monkeypatch.setattr("deepseek_core.providers.settings", DummySettings())
    client = create_client()
    assert isinstance(client, DeepSeekClient)
    assert client.allowed_models == ("deepseek-chat",)


def test_create_client_async(monkeypatch):
    monkeypatch.setattr("deepseek_core.providers.settings", DummySettings())
    client = create_client(async_mode=True)
    assert isinstance(client, AsyncDeepSeekClient)
    assert client.base_url == "https://api.deepseek.com/v1"


def test_registry_models_and_default_allow_list():
    assert DEEPSEEK_CONFIG.name == "deepseek"
    assert "deepseek-reasoner" in DEEPSEEK_CONFIG.models
    assert "deepseek-reasoner" not in DEEPSEEK_CONFIG.allowed_models


def test_create_client_uses_configured_default_model(monkeypatch):
    class CoderSettings(DummySettings):
        default_model = "deepseek-coder"

    monkeypatch.setattr("deepseek_core.providers.settings", CoderSettings())
    assert create_client().default_model == "deepseek-coder"
