"""Root conftest — shared fixtures for all tests."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator

import httpx
import pytest

from core.config import Settings, get_settings

Handler = Callable[[httpx.Request], httpx.Response]
MakeClient = Callable[[Handler], httpx.AsyncClient]


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Settings are cached process-wide; isolate tests that patch the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Defaults only — ignores any local .env file."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def make_client() -> MakeClient:
    """Build an httpx client whose requests are answered by ``handler``."""

    def _make(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


def request_json(request: httpx.Request) -> dict:
    """Decode the JSON body of a captured request."""
    return json.loads(request.content)
