"""Testes do ZapBot: fluxo de mensagens, webhooks, health e shutdown."""

from __future__ import annotations

import asyncio
import sys
import types
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.bot import ZapBot
from app.commands import CommandRegistry
from app.infra.stores import MemoryCommandStatsStore, MemoryConversationStore, MemoryRateLimitStore
from app.pipeline import EventPipeline
from app.plugins import PluginManager
from app.services.rate_limiter import RateLimiter
from app.sessions import SessionManager
from config.settings import BotSettings, RateLimitSettings, StoreSettings, WhatsAppSettings
from fsm import ConnectionState
from tests.fakes.fake_chat_client import FakeChatClient, FakeClock
from utils.errors import BridgeConnectionError, NotFoundError, ValidationError

USER = "5511999999999@c.us"


class BotHarness:
    """Bot completo sobre stores em memória e cliente fake."""

    def __init__(
        self,
        *,
        plugin_modules: tuple[str, ...] = (),
        max_requests: int = 30,
        max_reconnect_attempts: int = 3,
        clock: FakeClock | None = None,
    ) -> None:
        self.client = FakeChatClient()
        self.conversation_store = MemoryConversationStore()
        self.stats_store = MemoryCommandStatsStore()
        self.clock = clock or FakeClock()
        self.notifier = MagicMock()
        self.notifier.enabled = True
        self.notifier.notify = AsyncMock(return_value=True)
        self.shutdown_hook = MagicMock()

        whatsapp = WhatsAppSettings(
            session_name="bot-test",
            qr_refresh_interval_ms=60_000,
            reconnect_interval_ms=1,
            reconnect_max_delay_ms=2,
            max_reconnect_attempts=max_reconnect_attempts,
            health_check_interval_ms=60_000,
        )
        self.registry = CommandRegistry(stats_store=self.stats_store)
        self.pipeline = EventPipeline()
        self.session = SessionManager(
            self.client, whatsapp, self.conversation_store, rng=lambda: 0.0
        )
        self.bot = ZapBot(
            session=self.session,
            registry=self.registry,
            limiter=RateLimiter(
                MemoryRateLimitStore(),
                RateLimitSettings(window_ms=60_000, max_requests=max_requests),
            ),
            pipeline=self.pipeline,
            plugins=PluginManager(self.pipeline, self.registry),
            conversation_store=self.conversation_store,
            command_stats_store=self.stats_store,
            bot_settings=BotSettings(plugin_modules=plugin_modules, memory_limit_mb=1_000_000),
            store_settings=StoreSettings(history_retention_days=1),
            notifier=self.notifier,
            shutdown_hook=self.shutdown_hook,
            clock=self.clock,
        )

    async def start_connected(self) -> None:
        await self.bot.start()
        await self.session.on_credential("qr")
        await self.session.on_authenticated()
        await self.session.on_ready()

    async def receive(self, body: str, *, conversation_id: str = USER, from_me: bool = False) -> None:
        await self.session.on_message(
            {"id": f"m-{body}", "from": conversation_id, "body": body, "fromMe": from_me}
        )

    def notified_events(self) -> list[str]:
        return [c.args[0] for c in self.notifier.notify.await_args_list]


async def _settle(bot: ZapBot, timeout: float = 2.0) -> None:
    async def _wait() -> None:
        while bot.active_tasks:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_wait(), timeout)


# ──────────────────────────────────────────────────────────────────────────────
# Montagem e ciclo de vida
# ──────────────────────────────────────────────────────────────────────────────


class TestAssembly:
    def test_builtin_middlewares_in_order(self) -> None:
        harness = BotHarness()
        assert harness.pipeline.names() == ["rate_limit", "logging", "error_boundary", "commands"]

    def test_builtin_commands_registered(self) -> None:
        harness = BotHarness()
        names = [c["name"] for c in harness.bot.command_list()]
        assert names == ["help", "ping", "stats", "status"]

    @pytest.mark.asyncio
    async def test_configured_plugins_loaded_once(self) -> None:
        harness = BotHarness(plugin_modules=("app.plugins.greeting", "app.plugins.nao_existe"))

        assert await harness.bot.load_configured_plugins() == 1
        assert await harness.bot.load_configured_plugins() == 0
        assert [p["name"] for p in harness.bot.plugin_list()] == ["greeting"]
        assert harness.pipeline.names()[-1] == "plugin:greeting"

    @pytest.mark.asyncio
    async def test_raising_plugin_factory_does_not_block_start(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        module = types.ModuleType("zapbot_bot_plugin_quebrado")

        def get_plugin() -> None:
            raise RuntimeError("boom")

        module.get_plugin = get_plugin  # type: ignore[attr-defined]
        monkeypatch.setitem(sys.modules, "zapbot_bot_plugin_quebrado", module)
        harness = BotHarness(plugin_modules=("zapbot_bot_plugin_quebrado", "app.plugins.greeting"))

        await harness.bot.start()
        try:
            assert harness.bot.running
            assert [p["name"] for p in harness.bot.plugin_list()] == ["greeting"]
        finally:
            await harness.bot.stop()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        harness = BotHarness()

        await harness.bot.start()
        assert harness.bot.running
        assert harness.client.start_calls == 1

        await harness.bot.stop()
        assert not harness.bot.running
        assert harness.client.close_calls == 1
        assert harness.session.state == ConnectionState.DISCONNECTED
        assert "bot_started" in harness.notified_events()
        assert "bot_stopped" in harness.notified_events()

    @pytest.mark.asyncio
    async def test_start_failure_propagates(self) -> None:
        harness = BotHarness()
        harness.client.start_error = BridgeConnectionError("bridge offline")

        with pytest.raises(BridgeConnectionError):
            await harness.bot.start()

        assert not harness.bot.running

    @pytest.mark.asyncio
    async def test_credential_never_leaves_process(self) -> None:
        harness = BotHarness()
        await harness.bot.start()
        await harness.session.on_credential("segredo-do-qr")
        await _settle(harness.bot)

        call = next(
            c for c in harness.notifier.notify.await_args_list if c.args[0] == "credential_issued"
        )
        assert call.args[1] == {"issued_at": harness.clock.now}
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_reconnect_exhausted_stops_and_calls_shutdown_hook(self) -> None:
        harness = BotHarness(max_reconnect_attempts=1)
        await harness.start_connected()
        harness.client.start_error = BridgeConnectionError("offline")

        await harness.session.on_disconnected("LOGOUT")

        async def _wait_hook() -> None:
            while not harness.shutdown_hook.called:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_wait_hook(), 2.0)
        harness.shutdown_hook.assert_called_once()
        assert not harness.bot.running
        assert "session_failed" in harness.notified_events()

    @pytest.mark.asyncio
    async def test_cleanup_history_uses_retention(self) -> None:
        clock = FakeClock(start_ms=10 * 86_400_000)
        harness = BotHarness(clock=clock)
        await harness.session.on_message(
            {"id": "old", "from": USER, "body": "velha", "timestamp": 1}
        )
        await harness.session.on_message(
            {"id": "new", "from": USER, "body": "nova", "timestamp": (clock.now // 1000) - 60}
        )
        await _settle(harness.bot)

        assert await harness.bot.cleanup_history() == 1


# ──────────────────────────────────────────────────────────────────────────────
# Mensagens da sessão
# ──────────────────────────────────────────────────────────────────────────────


class TestMessageFlow:
    @pytest.mark.asyncio
    async def test_command_reply_sent_to_conversation(self) -> None:
        harness = BotHarness()
        await harness.start_connected()

        await harness.receive("!ping")
        await _settle(harness.bot)

        assert len(harness.client.sent) == 1
        conversation_id, text = harness.client.sent[0]
        assert conversation_id == USER
        assert text.startswith("🏓 Pong!")
        assert await harness.stats_store.get_all() == {"ping": 1}
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_plain_text_reaches_plugins(self) -> None:
        harness = BotHarness(plugin_modules=("app.plugins.greeting",))
        await harness.start_connected()

        await harness.receive("bom dia")
        await _settle(harness.bot)

        assert len(harness.client.sent) == 1
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_rate_limited_conversation_dropped(self) -> None:
        harness = BotHarness(max_requests=1)
        await harness.start_connected()

        await harness.receive("!ping")
        await _settle(harness.bot)
        await harness.receive("!help")
        await _settle(harness.bot)

        assert len(harness.client.sent) == 1
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_own_messages_persisted_but_not_rate_limited(self) -> None:
        harness = BotHarness(max_requests=1)
        await harness.start_connected()

        await harness.receive("resposta 1", from_me=True)
        await harness.receive("resposta 2", from_me=True)
        await _settle(harness.bot)
        await harness.receive("!ping")
        await _settle(harness.bot)

        assert len(harness.client.sent) == 1
        assert len(await harness.conversation_store.get_history(USER)) == 3
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_send_failure_in_plugin_is_contained(self) -> None:
        harness = BotHarness(plugin_modules=("app.plugins.greeting",))
        await harness.start_connected()
        harness.client.send_error = ConnectionError("bridge caiu")

        await harness.receive("oi tudo bem")
        await _settle(harness.bot)

        assert harness.bot.running
        await harness.bot.stop()


# ──────────────────────────────────────────────────────────────────────────────
# Webhook
# ──────────────────────────────────────────────────────────────────────────────


class TestWebhookEvents:
    @pytest.mark.asyncio
    async def test_message_event_runs_pipeline(self) -> None:
        harness = BotHarness()
        await harness.start_connected()

        result = await harness.bot.handle_webhook(
            "message", {"conversation_id": USER, "body": "!ping"}
        )

        assert result == {"success": True, "message": "comando executado"}
        assert harness.client.sent[0][0] == USER
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_message_event_plain_text(self) -> None:
        harness = BotHarness()
        result = await harness.bot.handle_webhook("message", {"conversation_id": USER, "body": "oi"})
        assert result["message"] == "mensagem processada"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [{}, {"conversation_id": USER}, {"body": "oi"}])
    async def test_message_event_requires_fields(self, data: dict[str, Any]) -> None:
        with pytest.raises(ValidationError):
            await BotHarness().bot.handle_webhook("message", data)

    @pytest.mark.asyncio
    async def test_command_event_without_conversation_only_logs(self) -> None:
        harness = BotHarness()

        result = await harness.bot.handle_webhook("command", {"command": "p"})

        assert result == {"success": True, "message": "comando ping executado"}
        assert harness.client.sent == []

    @pytest.mark.asyncio
    async def test_command_event_replies_to_valid_conversation(self) -> None:
        harness = BotHarness()
        await harness.start_connected()

        await harness.bot.handle_webhook(
            "command", {"command": "help", "args": ["ping"], "conversation_id": USER}
        )

        assert harness.client.sent[0][1].startswith("*!ping*")
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_command_event_errors(self) -> None:
        bot = BotHarness().bot
        with pytest.raises(NotFoundError):
            await bot.handle_webhook("command", {"command": "nada"})
        with pytest.raises(ValidationError):
            await bot.handle_webhook("command", {"command": "ping", "args": "x"})
        with pytest.raises(ValidationError):
            await bot.handle_webhook("command", {})

    @pytest.mark.asyncio
    async def test_broadcast(self) -> None:
        harness = BotHarness()
        await harness.start_connected()
        targets = [USER, "5521988887777@c.us"]

        result = await harness.bot.handle_webhook(
            "broadcast", {"message": "aviso", "conversation_ids": targets}
        )

        assert result["success"] is True
        assert [cid for cid, _ in harness.client.sent] == targets
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_broadcast_partial_failure(self) -> None:
        harness = BotHarness()
        await harness.start_connected()
        harness.client.send_error = ConnectionError("falhou")

        result = await harness.bot.handle_webhook(
            "broadcast", {"message": "aviso", "conversation_ids": [USER]}
        )

        assert result["success"] is False
        assert "0/1" in result["message"]
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_broadcast_requires_targets(self) -> None:
        with pytest.raises(ValidationError):
            await BotHarness().bot.handle_webhook("broadcast", {"message": "x", "conversation_ids": []})

    @pytest.mark.asyncio
    async def test_unknown_event(self) -> None:
        with pytest.raises(ValidationError):
            await BotHarness().bot.handle_webhook("ping", {})


# ──────────────────────────────────────────────────────────────────────────────
# Health / status
# ──────────────────────────────────────────────────────────────────────────────


class TestHealth:
    @pytest.mark.asyncio
    async def test_degraded_when_session_disconnected(self) -> None:
        health = await BotHarness().bot.health()

        assert health["status"] == "degraded"
        assert health["checks"]["database"] is True
        assert health["checks"]["session"] is False
        assert set(health["checks"]) == {"database", "session", "memory", "uptime"}

    @pytest.mark.asyncio
    async def test_healthy_when_connected(self) -> None:
        harness = BotHarness()
        await harness.start_connected()

        assert (await harness.bot.health())["status"] == "healthy"
        await harness.bot.stop()

    @pytest.mark.asyncio
    async def test_unhealthy_when_store_and_session_down(self) -> None:
        harness = BotHarness()
        harness.conversation_store.ping = AsyncMock(side_effect=ConnectionError())  # type: ignore[method-assign]

        assert (await harness.bot.health())["status"] == "unhealthy"

    def test_status_snapshot(self) -> None:
        status = BotHarness().bot.status()

        assert status["running"] is False
        assert status["session"]["state"] == "DISCONNECTED"
        assert status["commands"]["total_commands"] == 4
        assert status["plugins"]["total"] == 0
        assert status["rate_limits"]["max_requests"] == 30
