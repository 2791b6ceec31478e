"""Dependências FastAPI compartilhadas pelas rotas."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request, status

if TYPE_CHECKING:
    from app.bot import ZapBot
    from app.infra.crypto import WebhookAuthenticator

API_KEY_HEADER = "x-api-key"


def get_bot(request: Request) -> ZapBot:
    bot = getattr(request.app.state, "bot", None)
    if bot is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="bot não iniciado")
    return bot


def get_authenticator(request: Request) -> WebhookAuthenticator:
    authenticator = getattr(request.app.state, "authenticator", None)
    if authenticator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="bot não iniciado")
    return authenticator


def require_api_key(request: Request) -> None:
    """Exige ``x-api-key`` somente quando API_KEY está configurada."""
    if not getattr(request.app.state, "api_key_required", False):
        return
    authenticator = get_authenticator(request)
    if not authenticator.verify_api_key(request.headers.get(API_KEY_HEADER)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="não autorizado")
