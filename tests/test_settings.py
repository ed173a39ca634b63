import json

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from chatproxy.config import AppSettings, load_settings, save_settings
from chatproxy.errors import ConfigurationError
from chatproxy.main import create_app
from tests.fakes import FakeInferenceClient, completion


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "INFERENCE_BASE_URL",
        "SERPER_API_KEY",
        "SERPER_BASE_URL",
        "SEARCH_MAX_CHARS",
        "PARALLEL_TOOL_CALLS",
        "CHATPROXY_ENV_OVERRIDES_CONFIG",
    ):
        monkeypatch.delenv(key, raising=False)


def test_config_precedence_configjson_wins_by_default(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"inference_base_url": "http://config"}))
    monkeypatch.setenv("INFERENCE_BASE_URL", "http://env")
    settings = load_settings(config_path=config_path)
    assert settings.inference_base_url == "http://config"


def test_env_override_when_flag_set(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"inference_base_url": "http://config"}))
    monkeypatch.setenv("INFERENCE_BASE_URL", "http://env")
    monkeypatch.setenv("CHATPROXY_ENV_OVERRIDES_CONFIG", "1")
    settings = load_settings(config_path=config_path)
    assert settings.inference_base_url == "http://env"


def test_env_values_are_coerced(tmp_path, monkeypatch):
    monkeypatch.setenv("SERPER_API_KEY", "key")
    monkeypatch.setenv("SERPER_BASE_URL", "https://google.serper.dev")
    monkeypatch.setenv("SEARCH_MAX_CHARS", "120")
    monkeypatch.setenv("PARALLEL_TOOL_CALLS", "yes")
    settings = load_settings(config_path=tmp_path / "missing.json")
    assert settings.serper_api_key == "key"
    assert settings.search_max_chars == 120
    assert settings.parallel_tool_calls is True
    assert settings.search_results_ceiling == 5
    assert settings.search_timeout_s == 20.0


def test_serper_secrets_fall_back_to_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"serper_api_key": None}))
    monkeypatch.setenv("SERPER_API_KEY", "from-env")
    settings = load_settings(config_path=config_path)
    assert settings.serper_api_key == "from-env"


def test_unreadable_config_fails_loudly(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text("{broken")
    with pytest.raises(ConfigurationError):
        load_settings(config_path=config_path)


def test_create_app_fails_fast_without_search_config():
    settings = AppSettings(serper_api_key=None, serper_base_url="http://serper.test")
    with pytest.raises(ConfigurationError):
        create_app(settings, inference_client=FakeInferenceClient())
    settings = AppSettings(serper_api_key="key", serper_base_url=None)
    with pytest.raises(ConfigurationError):
        create_app(settings, inference_client=FakeInferenceClient())


def test_safe_dict_masks_key():
    data = AppSettings(serper_api_key="secret").to_safe_dict()
    assert data["serper_api_key"] == "********"
    assert AppSettings().to_safe_dict()["serper_api_key"] is None


def test_save_settings_round_trips(tmp_path):
    config_path = tmp_path / "config.json"
    save_settings(AppSettings(default_model="saved-model", search_max_chars=300), config_path=config_path)
    settings = load_settings(config_path=config_path)
    assert settings.default_model == "saved-model"
    assert settings.search_max_chars == 300


@pytest.mark.asyncio
async def test_post_settings_persists_and_rewires_clients(app_factory, tmp_path):
    app, fake_lm, fake_search = app_factory()
    fake_lm.responses = [completion("ok")]
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post(
                "/settings",
                json={
                    "default_model": "new-model",
                    "serper_api_key": "********",
                    "serper_base_url": "http://other-serper.test/",
                    "inference_base_url": "http://other-lm.test/v1",
                },
            )
            assert res.status_code == 200
            assert res.json()["settings"]["serper_api_key"] == "********"
            await client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    saved = json.loads((tmp_path / "config.json").read_text())
    assert saved["default_model"] == "new-model"
    assert saved["serper_api_key"] == "test-key"
    assert app.state.settings.default_model == "new-model"
    assert fake_search.base_url == "http://other-serper.test"
    assert fake_search.api_key == "test-key"
    assert fake_lm.base_url == "http://other-lm.test/v1"
    assert fake_lm.calls[0]["model"] == "new-model"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"serper_base_url": ""}, {"serper_api_key": None}, {"port": "not-a-port"}, ["not", "an", "object"]],
)
async def test_post_settings_rejects_invalid_updates(app_factory, tmp_path, body):
    app, _, _ = app_factory()
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post("/settings", json=body)

    assert res.status_code == 400
    assert not (tmp_path / "config.json").exists()
    assert app.state.settings.serper_base_url == "http://serper.test"
