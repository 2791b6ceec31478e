"""Serviços de aplicação.

Unidades reutilizáveis de orquestração.
Implementações concretas de IO ficam em app/infra/.
"""

from app.services.rate_limiter import RateLimiter, RateLimitResult

__all__ = [
    "RateLimitResult",
    "RateLimiter",
]
