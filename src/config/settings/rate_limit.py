"""Settings de rate limiting por conversa."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class RateLimitSettings:
    """Janela fixa por conversa.

    Attributes:
        window_ms: Duração da janela
        max_requests: Eventos permitidos por janela
        sweep_interval_ms: Período da limpeza de janelas expiradas
    """

    window_ms: int = 60_000
    max_requests: int = 30
    sweep_interval_ms: int = 3_600_000

    def validate(self) -> list[str]:
        """Valida configurações de rate limiting."""
        errors: list[str] = []
        if self.window_ms <= 0:
            errors.append("RATE_LIMIT_WINDOW_MS deve ser > 0")
        if self.max_requests < 1:
            errors.append("RATE_LIMIT_MAX_REQUESTS deve ser >= 1")
        if self.sweep_interval_ms <= 0:
            errors.append("RATE_LIMIT_SWEEP_INTERVAL_MS deve ser > 0")
        return errors


def _load_rate_limit_from_env() -> RateLimitSettings:
    """Carrega RateLimitSettings de variáveis de ambiente."""
    return RateLimitSettings(
        window_ms=int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000")),
        max_requests=int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "30")),
        sweep_interval_ms=int(os.getenv("RATE_LIMIT_SWEEP_INTERVAL_MS", "3600000")),
    )


@lru_cache(maxsize=1)
def get_rate_limit_settings() -> RateLimitSettings:
    """Retorna instância cacheada de RateLimitSettings."""
    return _load_rate_limit_from_env()
