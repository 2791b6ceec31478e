"""Endpoint de webhook de entrada.

Autenticação (antes de qualquer parse do corpo):
    - com ``x-webhook-timestamp``: variante com timestamp e versão
    - sem: ``x-webhook-signature`` = HMAC-SHA256 do corpo bruto

Falha de autenticação → 401 com mensagem genérica; o motivo vai só
para o log.
"""

from __future__ import annotations

import logging
from typing import Any

import pydantic
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.routes.dependencies import get_authenticator, get_bot
from app.infra.crypto import SIGNATURE_HEADER, TIMESTAMP_HEADER
from app.observability import reset_correlation_id, set_correlation_id
from utils.errors import AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

CORRELATION_HEADER = "x-correlation-id"


class WebhookPayload(BaseModel):
    """Corpo do webhook de entrada."""

    event: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookResponse(BaseModel):
    success: bool
    message: str


def _respond(success: bool, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        content=WebhookResponse(success=success, message=message).model_dump(),
        status_code=status_code,
    )


@router.post("/webhook")
async def receive_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    authenticator = get_authenticator(request)

    try:
        if TIMESTAMP_HEADER in request.headers:
            authenticator.verify_headers(request.headers, raw_body)
        elif not authenticator.verify(raw_body, request.headers.get(SIGNATURE_HEADER, "")):
            raise AuthenticationError("invalid_signature")
    except AuthenticationError as exc:
        logger.warning("webhook_auth_failed", extra={"reason": exc.reason})
        return _respond(False, "não autorizado", 401)

    try:
        payload = WebhookPayload.model_validate_json(raw_body)
    except pydantic.ValidationError as exc:
        logger.warning("webhook_invalid_payload", extra={"error_count": exc.error_count()})
        return _respond(False, "payload inválido", 400)

    bot = get_bot(request)
    token = set_correlation_id(request.headers.get(CORRELATION_HEADER))
    try:
        result = await bot.handle_webhook(payload.event, payload.data)
    except ValidationError as exc:
        return _respond(False, str(exc), 400)
    except NotFoundError as exc:
        return _respond(False, str(exc), 404)
    except Exception:
        logger.exception("webhook_processing_failed", extra={"webhook_event": payload.event})
        return _respond(False, "falha ao processar webhook", 500)
    finally:
        reset_correlation_id(token)

    return _respond(bool(result["success"]), str(result["message"]))
