"""Middlewares embutidos, registrados nesta ordem pelo bot:

    rate limit → logging → error boundary → despacho de comandos

Cada fábrica recebe só a capacidade de que precisa (limiter, registro),
nunca o bot inteiro.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from app.observability import record_latency
from config.logging import preview

if TYPE_CHECKING:
    from app.commands.registry import CommandRegistry
    from app.pipeline.pipeline import Middleware, PipelineContext, Proceed
    from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "⚠️ Desculpe, ocorreu um erro ao processar sua mensagem. Tente novamente mais tarde."


def rate_limit_middleware(limiter: RateLimiter) -> Middleware:
    """Descarta eventos de conversas acima do limite (mensagens próprias não contam)."""

    async def rate_limit(ctx: PipelineContext, proceed: Proceed) -> None:
        if ctx.event.from_me:
            await proceed()
            return
        result = await limiter.check_and_consume(ctx.event.conversation_id)
        if not result.allowed:
            ctx.state["rate_limited"] = True
            logger.info(
                "message_rate_limited",
                extra={
                    "conversation_id": ctx.event.conversation_id,
                    "ms_until_reset": result.ms_until_reset,
                },
            )
            return
        await proceed()

    return rate_limit


def logging_middleware() -> Middleware:
    """Loga início e fim de cada evento com a duração."""

    async def log_event(ctx: PipelineContext, proceed: Proceed) -> None:
        started = time.perf_counter()
        logger.info(
            "message_processing_started",
            extra={**ctx.event.to_log_dict(), "source": ctx.source, "preview": preview(ctx.event.body)},
        )
        try:
            await proceed()
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "message_processing_finished",
                extra={
                    "message_id": ctx.event.message_id,
                    "handled": ctx.handled,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            record_latency("pipeline", "execute", duration_ms)

    return log_event


def error_boundary_middleware(apology: str = APOLOGY_MESSAGE) -> Middleware:
    """Captura qualquer falha posterior e responde com um pedido de desculpas."""

    async def error_boundary(ctx: PipelineContext, proceed: Proceed) -> None:
        try:
            await proceed()
        except Exception:
            logger.exception(
                "pipeline_error",
                extra={**ctx.event.to_log_dict(), "source": ctx.source},
            )
            try:
                await ctx.reply(apology)
            except Exception:
                logger.warning(
                    "pipeline_apology_failed",
                    extra={"conversation_id": ctx.event.conversation_id},
                    exc_info=True,
                )

    return error_boundary


def command_middleware(registry: CommandRegistry) -> Middleware:
    """Despacha comandos; eventos não tratados seguem para os plugins."""

    async def dispatch_command(ctx: PipelineContext, proceed: Proceed) -> None:
        ctx.handled = await registry.dispatch(ctx.event, ctx.reply)
        if not ctx.handled:
            await proceed()

    return dispatch_command
