"""Protocolo de persistência das janelas de rate limit."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RateWindow:
    """Janela fixa de uma conversa.

    Attributes:
        count: Eventos aceitos na janela atual
        reset_at_ms: Epoch (ms) em que a janela expira
    """

    count: int
    reset_at_ms: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.reset_at_ms


@dataclass(frozen=True, slots=True)
class ConsumeOutcome:
    """Resultado atômico de uma tentativa de consumo no store."""

    allowed: bool
    window: RateWindow


class RateLimitStoreProtocol(ABC):
    """Contrato para contadores de janela fixa.

    ``consume`` é a única operação de escrita no caminho quente e deve ser
    atômica (compare-and-set) por chave: duas chamadas concorrentes para a
    mesma conversa nunca leem o mesmo ``count``.
    """

    @abstractmethod
    async def consume(
        self,
        key: str,
        *,
        window_ms: int,
        max_requests: int,
        now_ms: int,
    ) -> ConsumeOutcome:
        """Consome uma unidade da janela de ``key``.

        Janela ausente ou expirada é reiniciada com ``count=1`` e
        ``reset_at_ms=now_ms + window_ms``. Janela cheia não é alterada.
        """

    @abstractmethod
    async def get(self, key: str) -> RateWindow | None:
        """Retorna a janela persistida (ou None)."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a janela; True se existia."""

    @abstractmethod
    async def cleanup_expired(self, now_ms: int) -> int:
        """Remove janelas expiradas; retorna quantidade removida."""
