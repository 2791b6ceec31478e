"""Testes das rotas de consulta protegidas por x-api-key."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI

from api.routes import create_api_router
from app.infra.crypto import WebhookAuthenticator


def _app(*, api_key: str = "") -> FastAPI:
    bot = MagicMock()
    bot.running = True
    bot.command_list.return_value = [{"name": "ping"}]
    bot.plugin_list.return_value = [{"name": "greeting", "enabled": True}]
    bot.rate_limit_config.return_value = {"window_ms": 60_000, "max_requests": 30}
    bot.status.return_value = {
        "running": True,
        "commands": {"total_commands": 1},
        "plugins": {"total": 1},
    }

    app = FastAPI()
    app.include_router(create_api_router())
    app.state.bot = bot
    app.state.authenticator = WebhookAuthenticator("abc", api_key=api_key)
    app.state.api_key_required = bool(api_key)
    return app


async def _get(app: FastAPI, path: str, headers: dict[str, str] | None = None) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path, headers=headers)


class TestWithoutApiKey:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/commands", "/plugins", "/rate-limits", "/status"])
    async def test_open_when_api_key_not_configured(self, path: str) -> None:
        response = await _get(_app(), path)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_commands_payload(self) -> None:
        response = await _get(_app(), "/commands")
        assert response.json() == {"commands": [{"name": "ping"}], "stats": {"total_commands": 1}}

    @pytest.mark.asyncio
    async def test_rate_limits_payload(self) -> None:
        response = await _get(_app(), "/rate-limits")
        assert response.json()["max_requests"] == 30


class TestWithApiKey:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/commands", "/plugins", "/rate-limits", "/status"])
    async def test_missing_key_rejected(self, path: str) -> None:
        response = await _get(_app(api_key="k-1"), path)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_key_rejected(self) -> None:
        response = await _get(_app(api_key="k-1"), "/plugins", {"x-api-key": "k-2"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_key_accepted(self) -> None:
        response = await _get(_app(api_key="k-1"), "/plugins", {"x-api-key": "k-1"})
        assert response.status_code == 200
        assert response.json()["plugins"][0]["name"] == "greeting"

    @pytest.mark.asyncio
    async def test_health_and_index_stay_public(self) -> None:
        app = _app(api_key="k-1")
        index = await _get(app, "/")
        assert index.status_code == 200
        assert index.json()["name"] == "zapbot"
