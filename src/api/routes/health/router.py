"""Endpoints de health, status e descoberta."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.routes.dependencies import get_bot, require_api_key

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_VERSION = "1.0.0"

ENDPOINTS = [
    "/health - Health check",
    "/status - Estado do bot",
    "/webhook - Eventos de webhook (POST, assinado)",
    "/commands - Comandos registrados",
    "/plugins - Plugins registrados",
    "/rate-limits - Configuração do rate limit",
]


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Saúde do processo; 503 quando unhealthy."""
    bot = get_bot(request)
    payload = await bot.health()
    status_code = 503 if payload["status"] == "unhealthy" else 200
    if status_code != 200:
        logger.warning("health_check_unhealthy", extra={"checks": payload["checks"]})
    return JSONResponse(content=payload, status_code=status_code)


@router.get("/status", dependencies=[Depends(require_api_key)])
async def bot_status(request: Request) -> dict[str, Any]:
    return get_bot(request).status()


@router.get("/")
async def index(request: Request) -> dict[str, Any]:
    bot = getattr(request.app.state, "bot", None)
    return {
        "name": "zapbot",
        "version": SERVICE_VERSION,
        "status": "running" if bot is not None and bot.running else "stopped",
        "endpoints": ENDPOINTS,
    }
