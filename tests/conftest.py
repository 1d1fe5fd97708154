from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from portal_chat.api.app import create_app
from portal_chat.config.settings import Settings, get_settings
from tests.helpers.chat_harness import TOKENS, ChatHarness


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        environment="development",
        typing_store_backend="memory",
        typing_throttle_seconds=1.0,
        typing_expiry_seconds=0.05,
    )


@pytest.fixture()
def harness(settings: Settings) -> ChatHarness:
    return ChatHarness(settings=settings)


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("TYPING_STORE_BACKEND", "memory")
    get_settings.cache_clear()
    app = create_app()
    for token, principal in TOKENS.items():
        app.state.identities.register(token, principal)
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()
