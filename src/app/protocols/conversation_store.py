"""Protocolo do histórico de conversas.

Toda mensagem recebida (inclusive as enviadas pela própria conta) é
persistida antes de entrar no pipeline. O histórico é consumido apenas
pelos comandos ``stats``/``status`` e pela limpeza periódica.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.messages import ConversationRecord, ConversationStats


class ConversationStoreProtocol(ABC):
    """Contrato para armazenamento do histórico de conversas.

    Invariantes:
        - Idempotência por record_id
        - Corpo de mensagem nunca logado
    """

    @abstractmethod
    async def save_conversation(self, record: ConversationRecord) -> None:
        """Persiste um registro (sobrescreve se record_id já existir).

        Raises:
            RedisConnectionError: Falha de infraestrutura.
        """

    @abstractmethod
    async def get_history(
        self,
        conversation_id: str,
        *,
        limit: int = 50,
    ) -> list[ConversationRecord]:
        """Retorna os registros mais recentes, do mais antigo ao mais novo."""

    @abstractmethod
    async def get_stats(self) -> ConversationStats:
        """Agregados globais do histórico."""

    @abstractmethod
    async def cleanup(self, older_than_ms: int) -> int:
        """Remove registros com timestamp anterior a ``older_than_ms``.

        Returns:
            Quantidade de registros removidos.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Verifica disponibilidade do backend (health check)."""
