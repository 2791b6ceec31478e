"""Rotas HTTP da API.

Estrutura:
- routes/health/: /health, /status e /
- routes/webhook/: POST /webhook (assinado)
- routes/admin/: /commands, /plugins, /rate-limits

Agregação:
- router.py: registra todos os routers no app principal
"""

from __future__ import annotations

from api.routes.router import create_api_router

__all__ = ["create_api_router"]
