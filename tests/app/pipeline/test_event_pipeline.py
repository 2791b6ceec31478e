"""Testes do EventPipeline e dos middlewares embutidos."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.commands import Command, CommandRegistry
from app.domain.messages import InboundEvent
from app.infra.stores.memory_stores import MemoryRateLimitStore
from app.pipeline import (
    APOLOGY_MESSAGE,
    EventPipeline,
    PipelineContext,
    command_middleware,
    error_boundary_middleware,
    logging_middleware,
    rate_limit_middleware,
)
from app.services.rate_limiter import RateLimiter
from config.settings.rate_limit import RateLimitSettings
from tests.fakes.fake_chat_client import FakeClock


def _ctx(body: str = "oi", *, from_me: bool = False) -> PipelineContext:
    event = InboundEvent(
        message_id="m1",
        conversation_id="5511@c.us",
        sender_id="5511@c.us",
        body=body,
        from_me=from_me,
    )
    return PipelineContext(event=event, reply=AsyncMock())


def _recorder(trace: list[str], label: str, *, stop: bool = False):
    async def middleware(ctx: PipelineContext, proceed) -> None:
        trace.append(f"{label}:before")
        if not stop:
            await proceed()
        trace.append(f"{label}:after")

    return middleware


class TestEventPipeline:
    """Ordem, interrupção e snapshot da cadeia."""

    @pytest.mark.asyncio
    async def test_onion_order(self) -> None:
        trace: list[str] = []
        pipeline = EventPipeline()
        pipeline.use(_recorder(trace, "a"), "a")
        pipeline.use(_recorder(trace, "b"), "b")

        await pipeline.execute(_ctx())

        assert trace == ["a:before", "b:before", "b:after", "a:after"]
        assert pipeline.names() == ["a", "b"]
        assert len(pipeline) == 2

    @pytest.mark.asyncio
    async def test_not_calling_proceed_stops_chain(self) -> None:
        trace: list[str] = []
        pipeline = EventPipeline()
        pipeline.use(_recorder(trace, "a", stop=True))
        pipeline.use(_recorder(trace, "b"))

        await pipeline.execute(_ctx())

        assert trace == ["a:before", "a:after"]

    @pytest.mark.asyncio
    async def test_proceed_twice_raises(self) -> None:
        async def greedy(ctx: PipelineContext, proceed) -> None:
            await proceed()
            await proceed()

        pipeline = EventPipeline()
        pipeline.use(greedy)

        with pytest.raises(RuntimeError):
            await pipeline.execute(_ctx())

    @pytest.mark.asyncio
    async def test_mutation_during_execution_affects_next_event_only(self) -> None:
        trace: list[str] = []
        pipeline = EventPipeline()
        late = _recorder(trace, "late")

        async def adder(ctx: PipelineContext, proceed) -> None:
            pipeline.use(late, "late")
            await proceed()

        pipeline.use(adder)
        await pipeline.execute(_ctx())
        assert trace == []

        pipeline.remove(adder)
        await pipeline.execute(_ctx())
        assert trace == ["late:before", "late:after"]

    def test_remove_unknown_returns_false(self) -> None:
        assert EventPipeline().remove(AsyncMock()) is False


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_denied_event_does_not_proceed(self) -> None:
        limiter = RateLimiter(
            MemoryRateLimitStore(),
            RateLimitSettings(window_ms=60_000, max_requests=1),
            clock=FakeClock(),
        )
        middleware = rate_limit_middleware(limiter)
        proceed = AsyncMock()

        await middleware(_ctx(), proceed)
        ctx = _ctx()
        await middleware(ctx, proceed)

        assert proceed.await_count == 1
        assert ctx.state["rate_limited"] is True

    @pytest.mark.asyncio
    async def test_own_messages_not_counted(self) -> None:
        limiter = AsyncMock()
        proceed = AsyncMock()

        await rate_limit_middleware(limiter)(_ctx(from_me=True), proceed)

        limiter.check_and_consume.assert_not_awaited()
        proceed.assert_awaited_once()


class TestLoggingMiddleware:
    @pytest.mark.asyncio
    async def test_logs_even_when_downstream_fails(self, caplog) -> None:
        proceed = AsyncMock(side_effect=RuntimeError("boom"))
        with caplog.at_level("INFO"), pytest.raises(RuntimeError):
            await logging_middleware()(_ctx(), proceed)

        messages = [r.getMessage() for r in caplog.records]
        assert "message_processing_started" in messages
        assert "message_processing_finished" in messages


class TestErrorBoundaryMiddleware:
    @pytest.mark.asyncio
    async def test_failure_replies_with_apology(self) -> None:
        ctx = _ctx()
        await error_boundary_middleware()(ctx, AsyncMock(side_effect=RuntimeError("boom")))
        ctx.reply.assert_awaited_once_with(APOLOGY_MESSAGE)

    @pytest.mark.asyncio
    async def test_apology_failure_is_swallowed(self) -> None:
        ctx = _ctx()
        ctx.reply.side_effect = ConnectionError("offline")
        await error_boundary_middleware("desculpe")(ctx, AsyncMock(side_effect=RuntimeError()))
        ctx.reply.assert_awaited_once_with("desculpe")

    @pytest.mark.asyncio
    async def test_success_does_not_reply(self) -> None:
        ctx = _ctx()
        await error_boundary_middleware()(ctx, AsyncMock())
        ctx.reply.assert_not_awaited()


class TestCommandMiddleware:
    @pytest.mark.asyncio
    async def test_handled_command_stops_chain(self) -> None:
        registry = CommandRegistry()
        registry.register(Command(name="ping", handler=AsyncMock()))
        ctx = _ctx("!ping")
        proceed = AsyncMock()

        await command_middleware(registry)(ctx, proceed)

        assert ctx.handled is True
        proceed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unhandled_event_proceeds(self) -> None:
        ctx = _ctx("!desconhecido")
        proceed = AsyncMock()

        await command_middleware(CommandRegistry())(ctx, proceed)

        assert ctx.handled is False
        proceed.assert_awaited_once()


class TestFullChain:
    @pytest.mark.asyncio
    async def test_plugin_failure_contained_by_boundary(self) -> None:
        pipeline = EventPipeline()
        pipeline.use(logging_middleware(), "logging")
        pipeline.use(error_boundary_middleware(), "error_boundary")
        pipeline.use(command_middleware(CommandRegistry()), "commands")

        async def broken_plugin(ctx: PipelineContext, proceed) -> None:
            raise ValueError("plugin quebrado")

        pipeline.use(broken_plugin, "plugin:broken")
        ctx = _ctx("oi")

        await pipeline.execute(ctx)

        ctx.reply.assert_awaited_once_with(APOLOGY_MESSAGE)
