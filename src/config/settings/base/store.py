"""Settings do backend de persistência.

Histórico de conversas, janelas de rate limit e contadores de uso de
comandos compartilham o mesmo backend.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from config.settings.base.core import BaseSettings

StoreBackend = Literal["memory", "redis"]


@dataclass(frozen=True)
class StoreSettings:
    """Configurações de persistência.

    Attributes:
        backend: Backend dos stores (memory|redis)
        key_prefix: Prefixo das chaves Redis
        history_retention_days: Idade máxima do histórico de conversas
        history_max_per_conversation: Máximo de registros mantidos por conversa
    """

    backend: StoreBackend = "memory"
    key_prefix: str = "zapbot"
    history_retention_days: int = 30
    history_max_per_conversation: int = 500

    def validate(self, base: BaseSettings) -> list[str]:
        """Valida configurações de persistência.

        Args:
            base: BaseSettings para verificar ambiente.

        Returns:
            Lista de erros de validação.
        """
        errors: list[str] = []

        if self.backend not in ("memory", "redis"):
            errors.append(f"STORE_BACKEND inválido: {self.backend}")

        if self.backend == "memory" and base.is_production:
            errors.append("STORE_BACKEND=memory proibido em production. Use Redis.")

        if self.backend == "redis" and not base.redis_url:
            errors.append("STORE_BACKEND=redis requer REDIS_URL configurado")

        if self.history_retention_days <= 0:
            errors.append("HISTORY_RETENTION_DAYS deve ser > 0")

        if self.history_max_per_conversation <= 0:
            errors.append("HISTORY_MAX_PER_CONVERSATION deve ser > 0")

        return errors


def _load_store_from_env() -> StoreSettings:
    """Carrega StoreSettings de variáveis de ambiente."""
    backend_str = os.getenv("STORE_BACKEND", "memory").lower()
    backend: StoreBackend = backend_str if backend_str in ("memory", "redis") else "memory"
    return StoreSettings(
        backend=backend,
        key_prefix=os.getenv("STORE_KEY_PREFIX", "zapbot"),
        history_retention_days=int(os.getenv("HISTORY_RETENTION_DAYS", "30")),
        history_max_per_conversation=int(
            os.getenv("HISTORY_MAX_PER_CONVERSATION", "500")
        ),
    )


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    """Retorna instância cacheada de StoreSettings."""
    return _load_store_from_env()
