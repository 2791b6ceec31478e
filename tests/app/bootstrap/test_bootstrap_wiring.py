"""Testes do composition root (settings → stores → bot)."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.bootstrap import (
    build_bot,
    collect_settings_errors,
    create_notifier,
    create_stores,
    validate_runtime_settings,
)
from app.bootstrap.clients import close_async_redis_client, create_async_redis_client
from app.bot import ZapBot
from app.infra.crypto import WebhookAuthenticator
from app.infra.stores import (
    MemoryConversationStore,
    RedisCommandStatsStore,
    RedisConversationStore,
    RedisRateLimitStore,
)
from config.settings import (
    StoreSettings,
    get_base_settings,
    get_bot_settings,
    get_rate_limit_settings,
    get_store_settings,
    get_webhook_settings,
    get_whatsapp_settings,
)
from tests.fakes.fake_chat_client import FakeChatClient
from utils.errors import RedisConnectionError

_GETTERS = (
    get_base_settings,
    get_bot_settings,
    get_rate_limit_settings,
    get_store_settings,
    get_webhook_settings,
    get_whatsapp_settings,
)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    for getter in _GETTERS:
        getter.cache_clear()
    yield
    for getter in _GETTERS:
        getter.cache_clear()


class TestCreateStores:
    def test_memory_backend(self) -> None:
        conversation, _, _ = create_stores(StoreSettings(backend="memory"))
        assert isinstance(conversation, MemoryConversationStore)

    def test_redis_backend_uses_given_client(self) -> None:
        stores = create_stores(StoreSettings(backend="redis", key_prefix="x"), MagicMock())
        assert [type(s) for s in stores] == [
            RedisConversationStore,
            RedisRateLimitStore,
            RedisCommandStatsStore,
        ]


class TestRedisClientFactory:
    def test_missing_url_raises(self) -> None:
        with pytest.raises(RedisConnectionError):
            create_async_redis_client("")

    @pytest.mark.asyncio
    async def test_close_prefers_aclose(self) -> None:
        client = MagicMock()
        client.aclose = AsyncMock()
        await close_async_redis_client(client)
        client.aclose.assert_awaited_once()
        await close_async_redis_client(None)


class TestValidation:
    def test_development_only_warns(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "development")
        monkeypatch.setenv("PORT", "0")

        assert any(e.startswith("bot: ") for e in collect_settings_errors())
        validate_runtime_settings()

    def test_production_fails_fast(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.delenv("WEBHOOK_SECRET", raising=False)
        monkeypatch.setenv("STORE_BACKEND", "memory")

        with pytest.raises(RuntimeError, match="Configuração inválida"):
            validate_runtime_settings()


class TestBuildBot:
    def test_build_bot_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.setenv("COMMAND_PREFIX", "/")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "7")

        bot = build_bot(client=FakeChatClient(), shutdown_hook=MagicMock())

        assert isinstance(bot, ZapBot)
        assert bot.status()["rate_limits"]["max_requests"] == 7
        assert bot.status()["session"]["state"] == "DISCONNECTED"

    def test_notifier_disabled_without_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OUTBOUND_WEBHOOK_URL", raising=False)
        assert create_notifier(WebhookAuthenticator("abc")).enabled is False
