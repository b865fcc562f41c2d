"""Fixtures for tests against a mocked Greenrun API."""

from collections.abc import AsyncGenerator

import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr

from greenrun_batch.client import ApiClient
from greenrun_batch.config import ApiConfig

API_URL = "http://greenrun.test"


@pytest.fixture
def config() -> ApiConfig:
    """Create test configuration."""
    return ApiConfig(token=SecretStr("gr-token-123"), api_url=API_URL)


@pytest.fixture
async def client(
    config: ApiConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[ApiClient, None]:
    """Create client with managed session."""
    async with ApiClient.from_config(config) as impl:
        yield impl
