"""Redis Rate Limit Store: janelas fixas persistidas.

Cada conversa tem um hash ``{prefix}:ratelimit:{conversation_id}`` com
``count`` e ``reset_at``. O consumo roda num script Lua, o que torna
leitura + incremento atômicos mesmo com várias tasks concorrentes.
A chave expira sozinha em ``reset_at`` (PEXPIREAT).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.protocols.rate_limit_store import (
    ConsumeOutcome,
    RateLimitStoreProtocol,
    RateWindow,
)
from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)

# Retorna {allowed, count, reset_at}
CONSUME_SCRIPT = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count') or '0')
local reset_at = tonumber(redis.call('HGET', KEYS[1], 'reset_at') or '0')
local window_ms = tonumber(ARGV[1])
local max_requests = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
if reset_at == 0 or now_ms >= reset_at then
  reset_at = now_ms + window_ms
  redis.call('HSET', KEYS[1], 'count', 1, 'reset_at', reset_at)
  redis.call('PEXPIREAT', KEYS[1], reset_at)
  return {1, 1, reset_at}
end
if count >= max_requests then
  return {0, count, reset_at}
end
count = redis.call('HINCRBY', KEYS[1], 'count', 1)
return {1, count, reset_at}
"""


def _decode(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    return value.decode() if isinstance(value, bytes) else value


class RedisRateLimitStore(RateLimitStoreProtocol):
    """Store de janelas de rate limit usando Redis.

    Args:
        async_redis_client: Cliente Redis assíncrono
        key_prefix: Namespace das chaves
    """

    def __init__(self, async_redis_client: AsyncRedis[bytes], key_prefix: str = "zapbot") -> None:
        self._redis = async_redis_client
        self._prefix = f"{key_prefix}:ratelimit:"

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def consume(
        self,
        key: str,
        *,
        window_ms: int,
        max_requests: int,
        now_ms: int,
    ) -> ConsumeOutcome:
        try:
            allowed, count, reset_at = await self._redis.eval(
                CONSUME_SCRIPT,
                1,
                self._key(key),
                window_ms,
                max_requests,
                now_ms,
            )
        except Exception as exc:
            raise RedisConnectionError("Falha ao consumir janela no Redis") from exc
        return ConsumeOutcome(
            allowed=bool(int(allowed)),
            window=RateWindow(count=int(count), reset_at_ms=int(reset_at)),
        )

    async def get(self, key: str) -> RateWindow | None:
        try:
            raw = await self._redis.hgetall(self._key(key))
        except Exception as exc:
            raise RedisConnectionError("Falha ao ler janela no Redis") from exc
        if not raw:
            return None
        data = {_decode(k): _decode(v) for k, v in raw.items()}
        return RateWindow(count=int(data["count"]), reset_at_ms=int(data["reset_at"]))

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._redis.delete(self._key(key))
        except Exception as exc:
            raise RedisConnectionError("Falha ao remover janela no Redis") from exc
        return bool(removed)

    async def cleanup_expired(self, now_ms: int) -> int:
        """Remove janelas vencidas que ainda não expiraram por TTL."""
        removed = 0
        try:
            async for raw_key in self._redis.scan_iter(match=f"{self._prefix}*", count=500):
                reset_at = _decode(await self._redis.hget(raw_key, "reset_at"))
                if reset_at is not None and int(reset_at) <= now_ms:
                    removed += int(await self._redis.delete(raw_key))
        except Exception as exc:
            raise RedisConnectionError("Falha na limpeza de janelas no Redis") from exc
        if removed:
            logger.debug("rate_limit_windows_purged", extra={"removed": removed})
        return removed
