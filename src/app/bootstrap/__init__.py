"""Bootstrap da aplicação: inicialização e wiring.

Este módulo é o composition root: configura logging, valida settings e
conecta implementações concretas (stores, bridge, notifier) aos
componentes do bot. Os getters de settings só são chamados aqui.

Uso:
    from app.bootstrap import build_bot, initialize_app

    initialize_app()
    bot = build_bot()
    await bot.start()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.bot import ZapBot
from app.bootstrap.clients import create_async_redis_client
from app.commands import CommandRegistry
from app.infra.crypto import WebhookAuthenticator
from app.infra.http import HttpClient, HttpClientConfig
from app.infra.stores import (
    MemoryCommandStatsStore,
    MemoryConversationStore,
    MemoryRateLimitStore,
    RedisCommandStatsStore,
    RedisConversationStore,
    RedisRateLimitStore,
)
from app.infra.webhook import OutboundNotifier
from app.infra.whatsapp import WhatsAppBridgeClient
from app.observability import get_correlation_id
from app.pipeline import EventPipeline
from app.plugins import PluginManager
from app.services.rate_limiter import RateLimiter
from app.sessions import SessionManager
from config.logging import configure_logging
from config.settings import (
    get_base_settings,
    get_bot_settings,
    get_rate_limit_settings,
    get_store_settings,
    get_webhook_settings,
    get_whatsapp_settings,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from redis.asyncio import Redis as AsyncRedis

    from app.protocols.chat_client import ChatClientProtocol
    from app.protocols.command_stats_store import CommandStatsStoreProtocol
    from app.protocols.conversation_store import ConversationStoreProtocol
    from app.protocols.rate_limit_store import RateLimitStoreProtocol
    from config.settings import StoreSettings

STRICT_VALIDATION_ENVS = {"staging", "production"}

logger = logging.getLogger(__name__)


def initialize_app() -> None:
    """Configura logging estruturado JSON com correlation_id.

    Deve ser chamada uma vez no início do serviço.
    """
    base = get_base_settings()
    configure_logging(
        level=base.log_level,
        service_name=base.service_name,
        correlation_id_getter=get_correlation_id,
    )


def initialize_test_app() -> None:
    """Inicializa logging para testes (DEBUG)."""
    configure_logging(
        level="DEBUG",
        service_name="zapbot_test",
        correlation_id_getter=get_correlation_id,
    )


def collect_settings_errors() -> list[str]:
    """Agrega erros de validação de todas as settings."""
    base = get_base_settings()
    errors: list[str] = []
    errors.extend(f"base: {error}" for error in base.validate())
    errors.extend(f"store: {error}" for error in get_store_settings().validate(base))
    errors.extend(f"whatsapp: {error}" for error in get_whatsapp_settings().validate())
    errors.extend(f"rate_limit: {error}" for error in get_rate_limit_settings().validate())
    errors.extend(f"webhook: {error}" for error in get_webhook_settings().validate(base))
    errors.extend(f"bot: {error}" for error in get_bot_settings().validate())
    return errors


def validate_runtime_settings() -> None:
    """Valida settings obrigatórias no startup.

    Em ``staging``/``production`` falha rápido para impedir boot inválido.
    Em ``development`` mantém alerta sem bloquear execução local.

    Raises:
        RuntimeError: Configuração inválida em ambiente estrito.
    """
    environment = get_base_settings().environment
    errors = collect_settings_errors()

    if not errors:
        logger.info(
            "settings_validated",
            extra={"component": "bootstrap", "result": "ok", "environment": environment},
        )
        return

    logger.warning(
        "settings_validation_failed",
        extra={
            "component": "bootstrap",
            "result": "failed",
            "environment": environment,
            "error_count": len(errors),
            "errors": errors,
        },
    )
    if environment in STRICT_VALIDATION_ENVS:
        details = "\n".join(f"- {error}" for error in errors)
        raise RuntimeError(f"Configuração inválida para {environment}:\n{details}")


def create_stores(
    settings: StoreSettings,
    redis_client: AsyncRedis | None = None,
) -> tuple[ConversationStoreProtocol, RateLimitStoreProtocol, CommandStatsStoreProtocol]:
    """Cria os stores do backend configurado.

    Returns:
        (conversation_store, rate_limit_store, command_stats_store)
    """
    if settings.backend == "redis":
        client = redis_client or create_async_redis_client(get_base_settings().redis_url)
        prefix = settings.key_prefix
        logger.info("stores_created", extra={"backend": "redis", "key_prefix": prefix})
        return (
            RedisConversationStore(
                client,
                key_prefix=prefix,
                max_per_conversation=settings.history_max_per_conversation,
            ),
            RedisRateLimitStore(client, key_prefix=prefix),
            RedisCommandStatsStore(client, key_prefix=prefix),
        )

    logger.info("stores_created", extra={"backend": "memory"})
    return (
        MemoryConversationStore(max_per_conversation=settings.history_max_per_conversation),
        MemoryRateLimitStore(),
        MemoryCommandStatsStore(),
    )


def create_authenticator() -> WebhookAuthenticator:
    settings = get_webhook_settings()
    return WebhookAuthenticator(
        settings.secret,
        timeout_ms=settings.timeout_ms,
        envelope_key=settings.envelope_key,
        envelope_ttl_seconds=settings.envelope_ttl_seconds,
        api_key=settings.api_key,
    )


def create_notifier(authenticator: WebhookAuthenticator) -> OutboundNotifier:
    settings = get_webhook_settings()
    http_client = HttpClient(
        HttpClientConfig(
            timeout_seconds=settings.outbound_timeout_seconds,
            max_retries=settings.outbound_max_retries,
        )
    )
    return OutboundNotifier(settings.outbound_url, authenticator, http_client)


def build_bot(
    *,
    client: ChatClientProtocol | None = None,
    redis_client: AsyncRedis | None = None,
    authenticator: WebhookAuthenticator | None = None,
    shutdown_hook: Callable[[], None] | None = None,
) -> ZapBot:
    """Monta o bot a partir das settings de ambiente.

    Args:
        client: Cliente de chat (default: bridge WebSocket)
        redis_client: Cliente Redis já criado (backend redis)
        authenticator: Autenticador compartilhado com as rotas
        shutdown_hook: Substitui o SIGTERM padrão ao esgotar reconexões
    """
    bot_settings = get_bot_settings()
    store_settings = get_store_settings()
    whatsapp_settings = get_whatsapp_settings()

    conversation_store, rate_limit_store, command_stats_store = create_stores(
        store_settings, redis_client
    )
    registry = CommandRegistry(bot_settings.command_prefix, stats_store=command_stats_store)
    pipeline = EventPipeline()
    session = SessionManager(
        client or WhatsAppBridgeClient(whatsapp_settings),
        whatsapp_settings,
        conversation_store,
        command_prefix=bot_settings.command_prefix,
    )
    authenticator = authenticator or create_authenticator()

    extra: dict[str, Callable[[], None]] = {}
    if shutdown_hook is not None:
        extra["shutdown_hook"] = shutdown_hook

    return ZapBot(
        session=session,
        registry=registry,
        limiter=RateLimiter(rate_limit_store, get_rate_limit_settings()),
        pipeline=pipeline,
        plugins=PluginManager(pipeline, registry),
        conversation_store=conversation_store,
        command_stats_store=command_stats_store,
        bot_settings=bot_settings,
        store_settings=store_settings,
        notifier=create_notifier(authenticator),
        **extra,
    )


__all__ = [
    "build_bot",
    "collect_settings_errors",
    "create_authenticator",
    "create_notifier",
    "create_stores",
    "initialize_app",
    "initialize_test_app",
    "validate_runtime_settings",
]
