"""Orquestrador do bot.

Compõe sessão, registro de comandos, rate limiter, pipeline, plugins e
stores. Responsável por:
    - registrar middlewares embutidos (ordem fixa) e comandos embutidos
    - encaminhar mensagens recebidas pela sessão para o pipeline
    - tratar eventos de webhook (message | command | broadcast)
    - expor health/status
    - encerrar o processo quando a reconexão se esgota

Cada mensagem roda em uma task própria (com correlation_id), rastreada
e drenada no ``stop``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import resource
import signal
import sys
import time
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from app.commands import BuiltinCommands, CommandContext
from app.domain.messages import InboundEvent, is_valid_conversation_id, now_ms
from app.observability import generate_correlation_id, reset_correlation_id, set_correlation_id
from app.pipeline import (
    PipelineContext,
    command_middleware,
    error_boundary_middleware,
    logging_middleware,
    rate_limit_middleware,
)
from app.plugins import load_plugins
from app.sessions import SessionEvent
from config.logging import preview
from utils.errors import NotFoundError, PluginLifecycleError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

    from app.commands import CommandRegistry
    from app.commands.models import ReplyFn
    from app.infra.webhook import OutboundNotifier
    from app.pipeline import EventPipeline
    from app.plugins import Plugin, PluginManager
    from app.protocols.command_stats_store import CommandStatsStoreProtocol
    from app.protocols.conversation_store import ConversationStoreProtocol
    from app.services.rate_limiter import RateLimiter
    from app.sessions import SessionManager
    from config.settings import BotSettings, StoreSettings

logger = logging.getLogger(__name__)

DAY_MS = 86_400_000
MAX_CONCURRENT_EVENTS = 100
DRAIN_TIMEOUT_SECONDS = 30.0
HISTORY_CLEANUP_INTERVAL_MS = DAY_MS

WEBHOOK_CONVERSATION_ID = "webhook"


def _terminate_process() -> None:
    signal.raise_signal(signal.SIGTERM)


def _resident_memory_mb() -> float:
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss: KiB no Linux, bytes no macOS
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return usage / divisor


class ZapBot:
    """Composition root em tempo de execução.

    Args:
        session: Gerenciador da sessão WhatsApp
        registry: Registro de comandos
        limiter: Rate limiter por conversa
        pipeline: Pipeline de middlewares
        plugins: Gerenciador de plugins (ligado ao mesmo pipeline/registro)
        conversation_store: Histórico de conversas
        command_stats_store: Contadores persistentes de comandos
        bot_settings: Prefixo, plugins e limites do processo
        store_settings: Retenção de histórico
        notifier: Notificações de saída (opcional)
        shutdown_hook: Chamado após ``stop`` quando a reconexão se esgota
        clock: Epoch em ms
    """

    def __init__(
        self,
        *,
        session: SessionManager,
        registry: CommandRegistry,
        limiter: RateLimiter,
        pipeline: EventPipeline,
        plugins: PluginManager,
        conversation_store: ConversationStoreProtocol,
        command_stats_store: CommandStatsStoreProtocol,
        bot_settings: BotSettings,
        store_settings: StoreSettings,
        notifier: OutboundNotifier | None = None,
        shutdown_hook: Callable[[], None] = _terminate_process,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._session = session
        self._registry = registry
        self._limiter = limiter
        self._pipeline = pipeline
        self._plugins = plugins
        self._conversation_store = conversation_store
        self._command_stats_store = command_stats_store
        self._bot_settings = bot_settings
        self._store_settings = store_settings
        self._notifier = notifier
        self._shutdown_hook = shutdown_hook
        self._clock = clock

        self._running = False
        self._started_at = time.monotonic()
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_EVENTS)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._maintenance_tasks: list[asyncio.Task[None]] = []
        self._plugins_loaded = False

        self._register_builtin_middlewares()
        self._register_builtin_commands()
        self._subscribe_session_events()

    # ──────────────────────────────────────────────────────────────
    # Montagem
    # ──────────────────────────────────────────────────────────────

    def _register_builtin_middlewares(self) -> None:
        self._pipeline.use(rate_limit_middleware(self._limiter), name="rate_limit")
        self._pipeline.use(logging_middleware(), name="logging")
        self._pipeline.use(error_boundary_middleware(), name="error_boundary")
        self._pipeline.use(command_middleware(self._registry), name="commands")
        logger.info("builtin_middlewares_registered", extra={"middlewares": self._pipeline.names()})

    def _register_builtin_commands(self) -> None:
        builtin = BuiltinCommands(self._registry, self.status, self._usage_stats)
        for command in builtin.commands():
            self._registry.register(command)
        logger.info("builtin_commands_registered", extra={"count": len(builtin.commands())})

    def _subscribe_session_events(self) -> None:
        self._session.subscribe(SessionEvent.MESSAGE_RECEIVED, self._on_message_received)
        self._session.subscribe(SessionEvent.RECONNECT_EXHAUSTED, self._on_reconnect_exhausted)
        self._session.subscribe(SessionEvent.READY, self._on_ready)
        self._session.subscribe(SessionEvent.CREDENTIAL_ISSUED, self._on_credential_issued)
        self._session.subscribe(SessionEvent.DISCONNECTED, self._on_disconnected)

    async def register_plugin(self, plugin: Plugin) -> None:
        await self._plugins.register(plugin)

    async def load_configured_plugins(self) -> int:
        """Carrega e registra os plugins de ``plugin_modules`` (uma vez)."""
        if self._plugins_loaded or not self._bot_settings.auto_load_plugins:
            return 0
        self._plugins_loaded = True
        loaded = 0
        for plugin in load_plugins(self._bot_settings.plugin_modules):
            try:
                await self._plugins.register(plugin)
            except Exception as exc:
                error = PluginLifecycleError(plugin.name, "register", exc)
                logger.error("plugin_register_failed", extra={"plugin": plugin.name, "error": str(error)})
                continue
            loaded += 1
        return loaded

    # ──────────────────────────────────────────────────────────────
    # Ciclo de vida
    # ──────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started_at

    async def start(self) -> None:
        """Carrega plugins, inicia rotinas periódicas e a sessão.

        Raises:
            Exception: Falha ao iniciar a sessão (rotinas já iniciadas
                são paradas antes de propagar).
        """
        if self._running:
            logger.warning("bot_already_running")
            return

        logger.info("bot_starting")
        await self.load_configured_plugins()
        self._limiter.start()
        self._maintenance_tasks = [
            asyncio.create_task(
                self._periodic(self._bot_settings.cooldown_prune_interval_ms, self._prune_cooldowns)
            ),
            asyncio.create_task(self._periodic(HISTORY_CLEANUP_INTERVAL_MS, self.cleanup_history)),
        ]
        try:
            await self._session.initialize()
        except Exception:
            logger.exception("bot_start_failed")
            await self._stop_maintenance()
            await self._limiter.stop()
            raise

        self._running = True
        self._started_at = time.monotonic()
        logger.info("bot_started", extra={"session_state": self._session.state.value})
        self._notify("bot_started", {"session": self._session.state.value})

    async def stop(self) -> None:
        """Para o bot: drena eventos, destrói sessão e plugins."""
        if not self._running:
            logger.warning("bot_not_running")
            return

        logger.info("bot_stopping")
        self._running = False
        await self._stop_maintenance()
        await self._drain_tasks(exclude=asyncio.current_task())

        try:
            await self._session.destroy()
        except Exception:
            logger.exception("bot_session_destroy_failed")
        await self._plugins.cleanup()
        await self._limiter.stop()

        if self._notifier is not None and self._notifier.enabled:
            await self._notifier.notify("bot_stopped", {"uptime_seconds": round(self.uptime_seconds)})
        logger.info("bot_stopped")

    async def _stop_maintenance(self) -> None:
        for task in self._maintenance_tasks:
            task.cancel()
        if self._maintenance_tasks:
            await asyncio.gather(*self._maintenance_tasks, return_exceptions=True)
        self._maintenance_tasks = []

    async def _drain_tasks(self, *, exclude: asyncio.Task[Any] | None = None) -> None:
        pending_now = [task for task in self._tasks if task is not exclude]
        if not pending_now:
            return
        logger.info(
            "bot_shutdown_wait",
            extra={"pending_tasks": len(pending_now), "timeout_seconds": DRAIN_TIMEOUT_SECONDS},
        )
        _, pending = await asyncio.wait(pending_now, timeout=DRAIN_TIMEOUT_SECONDS)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _periodic(self, interval_ms: int, job: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await asyncio.sleep(interval_ms / 1000)
            try:
                await job()
            except Exception:
                logger.exception("bot_periodic_job_failed", extra={"job": getattr(job, "__name__", "job")})

    async def _prune_cooldowns(self) -> int:
        return self._registry.prune_cooldowns()

    async def cleanup_history(self) -> int:
        """Remove histórico mais antigo que a retenção configurada."""
        cutoff = self._clock() - self._store_settings.history_retention_days * DAY_MS
        removed = await self._conversation_store.cleanup(cutoff)
        logger.info("conversation_history_cleaned", extra={"removed": removed, "cutoff_ms": cutoff})
        return removed

    # ──────────────────────────────────────────────────────────────
    # Tasks rastreadas
    # ──────────────────────────────────────────────────────────────

    def _track(self, coroutine: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        with contextlib.suppress(asyncio.CancelledError):
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "bot_task_failed",
                    extra={"error_type": type(exc).__name__, "active_tasks": len(self._tasks)},
                )

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    # ──────────────────────────────────────────────────────────────
    # Eventos da sessão
    # ──────────────────────────────────────────────────────────────

    def _on_message_received(self, payload: dict[str, Any]) -> None:
        event = payload.get("event")
        if not isinstance(event, InboundEvent):
            logger.warning("bot_message_payload_invalid")
            return
        self._track(self.process_event(event))

    def _on_reconnect_exhausted(self, payload: dict[str, Any]) -> None:
        logger.critical("bot_reconnect_exhausted", extra={"attempts": payload.get("attempts")})
        self._notify("session_failed", {"attempts": payload.get("attempts")})
        self._track(self._shutdown())

    async def _shutdown(self) -> None:
        try:
            await self.stop()
        finally:
            logger.info("bot_shutdown_hook")
            self._shutdown_hook()

    def _on_ready(self, payload: dict[str, Any]) -> None:
        self._notify("session_ready", {"session_name": self._session.status()["session_name"]})

    def _on_credential_issued(self, payload: dict[str, Any]) -> None:
        # O QR em si não sai do processo
        self._notify("credential_issued", {"issued_at": self._clock()})

    def _on_disconnected(self, payload: dict[str, Any]) -> None:
        self._notify("session_disconnected", {"reason": payload.get("reason")})

    def _notify(self, event: str, data: dict[str, Any]) -> None:
        if self._notifier is None or not self._notifier.enabled:
            return
        self._track(self._notifier.notify(event, data))

    # ──────────────────────────────────────────────────────────────
    # Processamento
    # ──────────────────────────────────────────────────────────────

    def _reply_to(self, conversation_id: str) -> ReplyFn:
        async def reply(text: str) -> None:
            await self._session.send(conversation_id, text)

        return reply

    async def process_event(
        self,
        event: InboundEvent,
        *,
        source: str = "whatsapp",
        reply: ReplyFn | None = None,
    ) -> PipelineContext:
        """Roda o pipeline para um evento (sob o limite de concorrência)."""
        token = set_correlation_id(generate_correlation_id())
        context = PipelineContext(
            event=event,
            reply=reply or self._reply_to(event.conversation_id),
            source=source,
        )
        try:
            async with self._semaphore:
                await self._pipeline.execute(context)
        except Exception:
            logger.exception("bot_event_failed", extra=event.to_log_dict())
        finally:
            reset_correlation_id(token)
        return context

    # ──────────────────────────────────────────────────────────────
    # Webhook
    # ──────────────────────────────────────────────────────────────

    async def handle_webhook(self, event: str, data: dict[str, Any]) -> dict[str, Any]:
        """Trata um evento de webhook já autenticado.

        Returns:
            ``{"success": bool, "message": str}``

        Raises:
            ValidationError: Evento desconhecido ou dados incompletos.
            NotFoundError: Comando inexistente (evento ``command``).
        """
        logger.info("webhook_event_received", extra={"webhook_event": event})
        if event == "message":
            return await self._webhook_message(data)
        if event == "command":
            return await self._webhook_command(data)
        if event == "broadcast":
            return await self._webhook_broadcast(data)
        raise ValidationError(f"evento de webhook desconhecido: {event}")

    async def _webhook_message(self, data: dict[str, Any]) -> dict[str, Any]:
        conversation_id = _require_str(data, "conversation_id")
        body = _require_str(data, "body")
        event = InboundEvent(
            message_id=f"webhook-{uuid.uuid4().hex}",
            conversation_id=conversation_id,
            sender_id=str(data.get("sender") or conversation_id),
            body=body,
        )
        context = await self.process_event(event, source="webhook")
        return {
            "success": True,
            "message": "comando executado" if context.handled else "mensagem processada",
        }

    async def _webhook_command(self, data: dict[str, Any]) -> dict[str, Any]:
        name = _require_str(data, "command")
        raw_args = data.get("args") or []
        if not isinstance(raw_args, list):
            raise ValidationError("args deve ser uma lista")
        args = tuple(str(arg) for arg in raw_args)
        conversation_id = str(data.get("conversation_id") or WEBHOOK_CONVERSATION_ID)

        command = self._registry.get_command(name)
        if command is None:
            raise NotFoundError(f"comando não encontrado: {name}")

        event = InboundEvent(
            message_id=f"webhook-{uuid.uuid4().hex}",
            conversation_id=conversation_id,
            sender_id=WEBHOOK_CONVERSATION_ID,
            body=" ".join((f"{self._registry.prefix}{command.name}", *args)),
        )

        async def reply(text: str) -> None:
            if is_valid_conversation_id(conversation_id):
                await self._session.send(conversation_id, text)
                return
            logger.info(
                "webhook_command_reply",
                extra={"command": command.name, "preview": preview(text)},
            )

        context = CommandContext(event=event, args=args, reply=reply, command_name=command.name)
        await self._registry.invoke(command.name, context)
        return {"success": True, "message": f"comando {command.name} executado"}

    async def _webhook_broadcast(self, data: dict[str, Any]) -> dict[str, Any]:
        message = _require_str(data, "message")
        conversation_ids = data.get("conversation_ids")
        if not isinstance(conversation_ids, list) or not conversation_ids:
            raise ValidationError("conversation_ids deve ser uma lista não vazia")

        sent = 0
        for conversation_id in conversation_ids:
            try:
                await self._session.send(str(conversation_id), message)
            except Exception as exc:
                logger.warning(
                    "broadcast_send_failed",
                    extra={"conversation_id": conversation_id, "error_type": type(exc).__name__},
                )
                continue
            sent += 1

        logger.info("broadcast_finished", extra={"sent": sent, "total": len(conversation_ids)})
        return {
            "success": sent == len(conversation_ids),
            "message": f"broadcast enviado para {sent}/{len(conversation_ids)} conversas",
        }

    # ──────────────────────────────────────────────────────────────
    # Health / status
    # ──────────────────────────────────────────────────────────────

    async def health(self) -> dict[str, Any]:
        """Saúde do processo.

        healthy: store, sessão e memória OK; degraded: store ou sessão OK;
        unhealthy: nenhum dos dois.
        """
        try:
            database_ok = await self._conversation_store.ping()
        except Exception:
            logger.warning("health_store_ping_failed", exc_info=True)
            database_ok = False
        session_ok = self._session.is_connected
        memory_ok = _resident_memory_mb() < self._bot_settings.memory_limit_mb

        if database_ok and session_ok and memory_ok:
            status = "healthy"
        elif database_ok or session_ok:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "status": status,
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": {
                "database": database_ok,
                "session": session_ok,
                "memory": memory_ok,
                "uptime": round(self.uptime_seconds, 3),
            },
        }

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "uptime_seconds": round(self.uptime_seconds, 3),
            "session": self._session.status(),
            "commands": self._registry.stats(),
            "plugins": self._plugins.stats(),
            "rate_limits": self._limiter.stats(),
            "active_tasks": len(self._tasks),
        }

    def command_list(self) -> list[dict[str, Any]]:
        return [command.to_dict() for command in self._registry.get_commands()]

    def plugin_list(self) -> list[dict[str, object]]:
        return [plugin.to_dict() for plugin in self._plugins.get_plugins()]

    def rate_limit_config(self) -> dict[str, Any]:
        return self._limiter.stats()

    async def _usage_stats(self) -> dict[str, Any]:
        conversation_stats = await self._conversation_store.get_stats()
        try:
            usage = await self._command_stats_store.get_all()
        except Exception:
            logger.warning("command_stats_read_failed", exc_info=True)
            usage = self._registry.usage()
        return {
            "total_messages": conversation_stats.total_messages,
            "total_commands": conversation_stats.total_commands,
            "unique_conversations": conversation_stats.unique_conversations,
            "usage": usage,
        }


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"campo obrigatório ausente: {key}")
    return value
