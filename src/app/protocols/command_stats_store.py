"""Protocolo dos contadores de uso de comandos."""

from __future__ import annotations

from abc import ABC, abstractmethod


class CommandStatsStoreProtocol(ABC):
    """Contadores persistentes de execuções bem-sucedidas por comando."""

    @abstractmethod
    async def increment(self, command_name: str) -> int:
        """Incrementa e retorna o novo total do comando."""

    @abstractmethod
    async def get_all(self) -> dict[str, int]:
        """Totais por nome de comando."""
