"""Redis Command Stats Store: contadores de uso por comando (HINCRBY)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.protocols.command_stats_store import CommandStatsStoreProtocol
from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis


class RedisCommandStatsStore(CommandStatsStoreProtocol):
    """Contadores persistentes em um hash ``{prefix}:commands:usage``."""

    def __init__(self, async_redis_client: AsyncRedis[bytes], key_prefix: str = "zapbot") -> None:
        self._redis = async_redis_client
        self._key = f"{key_prefix}:commands:usage"

    async def increment(self, command_name: str) -> int:
        try:
            return int(await self._redis.hincrby(self._key, command_name, 1))
        except Exception as exc:
            raise RedisConnectionError("Falha ao incrementar uso de comando") from exc

    async def get_all(self) -> dict[str, int]:
        try:
            raw = await self._redis.hgetall(self._key)
        except Exception as exc:
            raise RedisConnectionError("Falha ao ler uso de comandos") from exc
        return {
            (k.decode() if isinstance(k, bytes) else k): int(v) for k, v in raw.items()
        }
