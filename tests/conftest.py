from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from picturebook.api.deps import get_app_settings, get_image, get_llm, get_stores
from picturebook.config import Settings
from picturebook.main import create_app
from picturebook.services.store import Stores, memory_stores
from tests.agent_fixtures import FakeImageService, FakeLLM


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        database_url="sqlite+aiosqlite:///:memory:",
        anthropic_api_key="test-key",
        replicate_api_token="test-token",
        outline_image_url="https://cdn.test/outline.png",
        batch_delay_s=0,
        poll_interval_s=0,
    )


@pytest.fixture()
def stores() -> Stores:
    return memory_stores()


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def fake_image() -> FakeImageService:
    return FakeImageService()


@pytest_asyncio.fixture(scope="function")
async def app(test_settings: Settings, stores: Stores, fake_llm: FakeLLM, fake_image: FakeImageService):
    app = create_app(test_settings)

    async def override_get_settings() -> Settings:
        return test_settings

    async def override_get_stores() -> Stores:
        return stores

    async def override_get_llm() -> FakeLLM:
        return fake_llm

    async def override_get_image() -> FakeImageService:
        return fake_image

    app.dependency_overrides[get_app_settings] = override_get_settings
    app.dependency_overrides[get_stores] = override_get_stores
    app.dependency_overrides[get_llm] = override_get_llm
    app.dependency_overrides[get_image] = override_get_image
    return app


@pytest_asyncio.fixture(scope="function")
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
