"""Entrypoint da aplicação zapbot.

Inicializa o bootstrap e expõe a aplicação ASGI (FastAPI). O lifespan
monta o bot, inicia a sessão WhatsApp e, no shutdown, para o bot e
fecha as conexões.

Uso (produção):
    uvicorn app.app:app --host 0.0.0.0 --port 3000

Uso (desenvolvimento):
    uvicorn app.app:app --reload --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from api.routes import create_api_router
from app.bootstrap import build_bot, create_authenticator, initialize_app, validate_runtime_settings
from app.bootstrap.clients import close_async_redis_client, create_async_redis_client
from config.logging import get_logger
from config.settings import get_base_settings, get_bot_settings, get_store_settings, get_webhook_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

# Inicializar logging ANTES de qualquer import que use logger
initialize_app()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Gerencia ciclo de vida da aplicação.

    Startup:
    - Valida configurações
    - Cria cliente Redis (backend redis)
    - Monta e inicia o bot

    Shutdown:
    - Para o bot (drena eventos, fecha a sessão)
    - Fecha conexões
    """
    base = get_base_settings()
    logger.info("app_starting", extra={"environment": base.environment})
    validate_runtime_settings()

    app.state.redis_client = None
    if get_store_settings().backend == "redis":
        app.state.redis_client = create_async_redis_client(base.redis_url)

    authenticator = create_authenticator()
    app.state.authenticator = authenticator
    app.state.api_key_required = bool(get_webhook_settings().api_key)
    app.state.bot = build_bot(redis_client=app.state.redis_client, authenticator=authenticator)
    await app.state.bot.start()

    yield

    logger.info("app_shutting_down")
    bot = app.state.bot
    if bot.running:
        await bot.stop()
    await close_async_redis_client(app.state.redis_client)


def create_app() -> FastAPI:
    """Cria e configura a aplicação FastAPI."""
    fastapi_app = FastAPI(
        title="zapbot",
        description="Bot de WhatsApp com comandos, plugins e webhooks",
        version="1.0.0",
        lifespan=lifespan,
    )
    fastapi_app.include_router(create_api_router())
    logger.info("app_configured")
    return fastapi_app


# Aplicação ASGI exposta para uvicorn
app = create_app()


def main() -> None:
    """Entrypoint para execução direta."""
    import uvicorn

    settings = get_bot_settings()
    logger.info("app_main", extra={"host": settings.host, "port": settings.port})
    uvicorn.run("app.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
