"""Consulta de comandos, plugins e rate limit."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from api.routes.dependencies import get_bot, require_api_key

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("/commands")
async def list_commands(request: Request) -> dict[str, Any]:
    bot = get_bot(request)
    return {"commands": bot.command_list(), "stats": bot.status()["commands"]}


@router.get("/plugins")
async def list_plugins(request: Request) -> dict[str, Any]:
    bot = get_bot(request)
    return {"plugins": bot.plugin_list(), "stats": bot.status()["plugins"]}


@router.get("/rate-limits")
async def rate_limits(request: Request) -> dict[str, Any]:
    return get_bot(request).rate_limit_config()
