from typing import Any, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from socialdl.config.settings import LoggingConfig, Settings
from socialdl.main import create_app
from tests.fakes import RICK_DETAILS


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=None, logging=LoggingConfig(enable_rich=False, level="WARNING"))


@pytest.fixture
def rick_details() -> Dict[str, Any]:
    return dict(RICK_DETAILS)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest_asyncio.fixture
async def client(app):
    # lifespan events do not run under ASGITransport, so Redis stays disabled
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await app.state.http_client.aclose()
