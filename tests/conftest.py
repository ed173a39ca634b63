from pathlib import Path

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from chatproxy.config import AppSettings
from chatproxy.main import create_app
from tests.fakes import FakeInferenceClient, FakeSerperClient


def make_settings(**overrides) -> AppSettings:
    settings = AppSettings(
        inference_base_url="http://lm.test/v1",
        default_model="test-model",
        serper_api_key="test-key",
        serper_base_url="http://serper.test",
        host="127.0.0.1",
        port=8000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        fake_lm: FakeInferenceClient | None = None,
        fake_search: FakeSerperClient | None = None,
        config_path: Path | None = None,
        **settings_overrides,
    ):
        settings = make_settings(**settings_overrides)
        lm_client = fake_lm or FakeInferenceClient()
        search_client = fake_search or FakeSerperClient()
        app = create_app(
            settings,
            inference_client=lm_client,
            search_client=search_client,
            config_path=config_path or (tmp_path / "config.json"),
        )
        return app, lm_client, search_client

    return _factory


@pytest.fixture
async def client(app_factory):
    app, lm_client, search_client = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.fake_lm = lm_client  # type: ignore[attr-defined]
            http_client.fake_search = search_client  # type: ignore[attr-defined]
            yield http_client
