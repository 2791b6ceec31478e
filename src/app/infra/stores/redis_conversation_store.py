"""Redis Conversation Store: histórico de conversas.

Layout de chaves (prefixo ``{prefix}:conv``):
    - ``{conv}:{conversation_id}:records``: hash record_id → JSON
    - ``{conv}:{conversation_id}:index``: sorted set record_id (score = timestamp_ms)
    - ``{conv}:ids``: set de conversation ids com histórico
    - ``{conv}:stats``: hash com totais (messages, commands)

Idempotência por record_id via HSETNX: reprocessar a mesma mensagem
sobrescreve o registro sem inflar os totais.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from app.domain.messages import ConversationRecord, ConversationStats
from app.protocols.conversation_store import ConversationStoreProtocol
from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisConversationStore(ConversationStoreProtocol):
    """Histórico de conversas usando Redis.

    Args:
        async_redis_client: Cliente Redis assíncrono
        key_prefix: Namespace das chaves
        max_per_conversation: Registros mantidos por conversa
    """

    def __init__(
        self,
        async_redis_client: AsyncRedis[bytes],
        key_prefix: str = "zapbot",
        max_per_conversation: int = 500,
    ) -> None:
        self._redis = async_redis_client
        self._prefix = f"{key_prefix}:conv"
        self._max_per_conversation = max_per_conversation

    def _records_key(self, conversation_id: str) -> str:
        return f"{self._prefix}:{conversation_id}:records"

    def _index_key(self, conversation_id: str) -> str:
        return f"{self._prefix}:{conversation_id}:index"

    @property
    def _ids_key(self) -> str:
        return f"{self._prefix}:ids"

    @property
    def _stats_key(self) -> str:
        return f"{self._prefix}:stats"

    async def save_conversation(self, record: ConversationRecord) -> None:
        records_key = self._records_key(record.conversation_id)
        payload = json.dumps(record.to_dict())
        try:
            created = await self._redis.hsetnx(records_key, record.record_id, payload)
            pipeline = self._redis.pipeline()
            if created:
                pipeline.zadd(
                    self._index_key(record.conversation_id),
                    {record.record_id: record.timestamp_ms},
                )
                pipeline.sadd(self._ids_key, record.conversation_id)
                pipeline.hincrby(self._stats_key, "messages", 1)
                if record.is_command:
                    pipeline.hincrby(self._stats_key, "commands", 1)
            else:
                pipeline.hset(records_key, record.record_id, payload)
            await pipeline.execute()
            if created:
                await self._trim(record.conversation_id)
        except RedisConnectionError:
            raise
        except Exception as exc:
            raise RedisConnectionError("Falha ao salvar conversa no Redis") from exc

    async def _trim(self, conversation_id: str) -> None:
        index_key = self._index_key(conversation_id)
        excess = await self._redis.zcard(index_key) - self._max_per_conversation
        if excess <= 0:
            return
        stale_ids = await self._redis.zrange(index_key, 0, excess - 1)
        await self._remove(conversation_id, [_text(i) for i in stale_ids])

    async def _remove(self, conversation_id: str, record_ids: list[str]) -> int:
        if not record_ids:
            return 0
        records_key = self._records_key(conversation_id)
        raw = await self._redis.hmget(records_key, record_ids)
        commands = sum(
            1 for item in raw if item is not None and json.loads(item).get("is_command")
        )
        pipeline = self._redis.pipeline()
        pipeline.hdel(records_key, *record_ids)
        pipeline.zrem(self._index_key(conversation_id), *record_ids)
        pipeline.hincrby(self._stats_key, "messages", -len(record_ids))
        if commands:
            pipeline.hincrby(self._stats_key, "commands", -commands)
        await pipeline.execute()
        return len(record_ids)

    async def get_history(
        self,
        conversation_id: str,
        *,
        limit: int = 50,
    ) -> list[ConversationRecord]:
        if limit <= 0:
            return []
        try:
            ids = await self._redis.zrange(self._index_key(conversation_id), -limit, -1)
            if not ids:
                return []
            raw = await self._redis.hmget(self._records_key(conversation_id), ids)
        except Exception as exc:
            raise RedisConnectionError("Falha ao ler histórico no Redis") from exc
        return [ConversationRecord.from_dict(json.loads(item)) for item in raw if item is not None]

    async def get_stats(self) -> ConversationStats:
        try:
            raw = await self._redis.hgetall(self._stats_key)
            unique = await self._redis.scard(self._ids_key)
        except Exception as exc:
            raise RedisConnectionError("Falha ao ler estatísticas no Redis") from exc
        stats = {_text(k): int(v) for k, v in raw.items()}
        return ConversationStats(
            total_messages=max(stats.get("messages", 0), 0),
            total_commands=max(stats.get("commands", 0), 0),
            unique_conversations=int(unique),
        )

    async def cleanup(self, older_than_ms: int) -> int:
        removed = 0
        try:
            for raw_id in await self._redis.smembers(self._ids_key):
                conversation_id = _text(raw_id)
                index_key = self._index_key(conversation_id)
                stale = await self._redis.zrangebyscore(index_key, "-inf", f"({older_than_ms}")
                removed += await self._remove(conversation_id, [_text(i) for i in stale])
                if await self._redis.zcard(index_key) == 0:
                    await self._redis.srem(self._ids_key, conversation_id)
        except Exception as exc:
            raise RedisConnectionError("Falha na limpeza do histórico no Redis") from exc
        logger.info("conversation_history_cleaned", extra={"removed": removed})
        return removed

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception:
            logger.warning("conversation_store_ping_failed")
            return False
