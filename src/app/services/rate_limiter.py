"""Rate limiter por conversa (janela fixa).

Dois níveis:
    - memória: caminho rápido; janela cheia e não expirada nega sem I/O
    - store: fonte de verdade; decide atomicamente e sobrevive a restart

Reset é preguiçoso (janela expirada reinicia na primeira observação).
Uma varredura de baixa frequência remove janelas expiradas para limitar
o crescimento. Qualquer erro do mecanismo de contagem libera o evento.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app.domain.messages import now_ms
from app.observability import record_counter
from app.protocols.rate_limit_store import RateWindow
from config.logging import log_fallback

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from app.protocols.rate_limit_store import RateLimitStoreProtocol
    from config.settings.rate_limit import RateLimitSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Decisão do rate limiter.

    Attributes:
        allowed: Evento pode seguir
        remaining: Capacidade restante na janela
        ms_until_reset: Tempo até a janela reiniciar
        degraded: Decisão tomada em fail-open (store indisponível)
    """

    allowed: bool
    remaining: int
    ms_until_reset: int
    degraded: bool = False


class RateLimiter:
    """Limite de eventos por conversa em janela fixa.

    Args:
        store: Persistência autoritativa das janelas
        settings: Janela, capacidade e período da varredura
        clock: Epoch em ms (injetável para testes)
    """

    def __init__(
        self,
        store: RateLimitStoreProtocol,
        settings: RateLimitSettings,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._window_ms = settings.window_ms
        self._max_requests = settings.max_requests
        self._sweep_interval_ms = settings.sweep_interval_ms
        self._clock = clock
        self._memory: dict[str, RateWindow] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def max_requests(self) -> int:
        return self._max_requests

    async def check_and_consume(self, conversation_id: str) -> RateLimitResult:
        """Consome uma unidade da janela da conversa.

        Returns:
            RateLimitResult; nunca levanta exceção (fail-open).
        """
        now = self._clock()
        cached = self._memory.get(conversation_id)
        if (
            cached is not None
            and not cached.is_expired(now)
            and cached.count >= self._max_requests
        ):
            return self._denied(conversation_id, cached, now)

        try:
            outcome = await self._store.consume(
                conversation_id,
                window_ms=self._window_ms,
                max_requests=self._max_requests,
                now_ms=now,
            )
        except Exception as exc:
            log_fallback(logger, "rate_limiter", reason=type(exc).__name__)
            return RateLimitResult(
                allowed=True,
                remaining=self._max_requests,
                ms_until_reset=0,
                degraded=True,
            )

        self._memory[conversation_id] = outcome.window
        if not outcome.allowed:
            return self._denied(conversation_id, outcome.window, now)
        return RateLimitResult(
            allowed=True,
            remaining=max(self._max_requests - outcome.window.count, 0),
            ms_until_reset=max(outcome.window.reset_at_ms - now, 0),
        )

    async def check_batch(self, conversation_ids: Iterable[str]) -> dict[str, RateLimitResult]:
        """Consome uma unidade para cada conversa (usado em broadcast)."""
        return {cid: await self.check_and_consume(cid) for cid in conversation_ids}

    def _denied(self, conversation_id: str, window: RateWindow, now: int) -> RateLimitResult:
        logger.info(
            "rate_limit_exceeded",
            extra={"conversation_id": conversation_id, "count": window.count},
        )
        record_counter("rate_limiter", "denied")
        return RateLimitResult(
            allowed=False,
            remaining=0,
            ms_until_reset=max(window.reset_at_ms - now, 1),
        )

    async def status(self, conversation_id: str) -> dict[str, Any]:
        """Estado atual sem consumir (store com fallback para memória)."""
        now = self._clock()
        try:
            window = await self._store.get(conversation_id)
        except Exception:
            logger.warning("rate_limit_status_store_failed", exc_info=True)
            window = self._memory.get(conversation_id)

        if window is None or window.is_expired(now):
            return {
                "conversation_id": conversation_id,
                "count": 0,
                "remaining": self._max_requests,
                "ms_until_reset": 0,
                "limited": False,
            }
        return {
            "conversation_id": conversation_id,
            "count": window.count,
            "remaining": max(self._max_requests - window.count, 0),
            "ms_until_reset": max(window.reset_at_ms - now, 0),
            "limited": window.count >= self._max_requests,
        }

    async def reset(self, conversation_id: str) -> None:
        """Zera a janela da conversa na memória e no store."""
        self._memory.pop(conversation_id, None)
        try:
            await self._store.delete(conversation_id)
        except Exception:
            logger.warning("rate_limit_reset_store_failed", exc_info=True)
        logger.info("rate_limit_reset", extra={"conversation_id": conversation_id})

    def update_limits(self, *, window_ms: int | None = None, max_requests: int | None = None) -> None:
        """Altera janela/capacidade em tempo de execução.

        Raises:
            ValueError: Valores não positivos.
        """
        if window_ms is not None:
            if window_ms <= 0:
                raise ValueError("window_ms deve ser > 0")
            self._window_ms = window_ms
        if max_requests is not None:
            if max_requests < 1:
                raise ValueError("max_requests deve ser >= 1")
            self._max_requests = max_requests
        logger.info(
            "rate_limit_updated",
            extra={"window_ms": self._window_ms, "max_requests": self._max_requests},
        )

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        active = [w for w in self._memory.values() if not w.is_expired(now)]
        return {
            "window_ms": self._window_ms,
            "max_requests": self._max_requests,
            "tracked_conversations": len(active),
            "limited_conversations": sum(1 for w in active if w.count >= self._max_requests),
        }

    # ──────────────────────────────────────────────────────────────
    # Varredura periódica
    # ──────────────────────────────────────────────────────────────

    async def sweep(self) -> int:
        """Remove janelas expiradas da memória e do store."""
        now = self._clock()
        expired = [key for key, window in self._memory.items() if window.is_expired(now)]
        for key in expired:
            del self._memory[key]
        removed = len(expired)
        try:
            removed += await self._store.cleanup_expired(now)
        except Exception:
            logger.warning("rate_limit_sweep_store_failed", exc_info=True)
        logger.info("rate_limit_sweep", extra={"removed": removed})
        return removed

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        await asyncio.gather(self._sweep_task, return_exceptions=True)
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_ms / 1000)
            await self.sweep()
