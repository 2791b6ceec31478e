"""Factories de clientes externos: Redis."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)


def create_async_redis_client(redis_url: str) -> AsyncRedis:
    """Cria cliente Redis assíncrono.

    Args:
        redis_url: URL de conexão (``REDIS_URL``)

    Returns:
        Cliente Redis assíncrono (conexão preguiçosa)

    Raises:
        RedisConnectionError: Se a URL não foi configurada
    """
    from redis.asyncio import Redis as AsyncRedis

    if not redis_url:
        msg = "REDIS_URL não configurado"
        raise RedisConnectionError(msg)

    client: AsyncRedis = AsyncRedis.from_url(
        redis_url,
        decode_responses=False,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )

    host = client.connection_pool.connection_kwargs.get("host", "unknown")
    logger.info("async_redis_client_created", extra={"host": host})
    return client


async def close_async_redis_client(client: AsyncRedis | None) -> None:
    """Fecha o cliente (``aclose`` nas versões novas, ``close`` nas antigas)."""
    if client is None:
        return
    close_async = getattr(client, "aclose", None)
    if callable(close_async):
        await close_async()
        return
    close_legacy = getattr(client, "close", None)
    if callable(close_legacy):
        await close_legacy()
