"""Testes dos stores Redis com mock."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.domain.messages import ConversationRecord
from app.infra.stores.redis_command_stats_store import RedisCommandStatsStore
from app.infra.stores.redis_conversation_store import RedisConversationStore
from app.infra.stores.redis_rate_limit_store import CONSUME_SCRIPT, RedisRateLimitStore
from utils.errors import RedisConnectionError


def _mock_redis() -> tuple[MagicMock, MagicMock]:
    redis = MagicMock()
    pipeline = MagicMock()
    pipeline.execute = AsyncMock(return_value=[])
    redis.pipeline.return_value = pipeline
    for name in (
        "hsetnx", "zcard", "zrange", "hmget", "hgetall", "scard",
        "smembers", "zrangebyscore", "srem", "ping", "eval", "delete",
        "hget", "hincrby",
    ):
        setattr(redis, name, AsyncMock())
    return redis, pipeline


def _record(record_id: str = "m1", **kw) -> ConversationRecord:
    return ConversationRecord(
        record_id=record_id,
        conversation_id="5511@c.us",
        sender_id="5511@c.us",
        body="!ping",
        timestamp_ms=1000,
        **kw,
    )


class TestRedisConversationStore:
    """Testes do RedisConversationStore."""

    @pytest.mark.asyncio
    async def test_save_new_record_updates_index_and_stats(self) -> None:
        redis, pipeline = _mock_redis()
        redis.hsetnx.return_value = True
        redis.zcard.return_value = 1
        store = RedisConversationStore(redis, key_prefix="t")

        await store.save_conversation(_record(is_command=True, command_name="ping"))

        key, field, payload = redis.hsetnx.call_args[0]
        assert key == "t:conv:5511@c.us:records"
        assert field == "m1"
        assert json.loads(payload)["command_name"] == "ping"
        pipeline.zadd.assert_called_once_with("t:conv:5511@c.us:index", {"m1": 1000})
        pipeline.sadd.assert_called_once_with("t:conv:ids", "5511@c.us")
        pipeline.hincrby.assert_any_call("t:conv:stats", "messages", 1)
        pipeline.hincrby.assert_any_call("t:conv:stats", "commands", 1)

    @pytest.mark.asyncio
    async def test_save_existing_record_does_not_inflate_stats(self) -> None:
        redis, pipeline = _mock_redis()
        redis.hsetnx.return_value = False
        store = RedisConversationStore(redis, key_prefix="t")

        await store.save_conversation(_record())

        pipeline.hset.assert_called_once()
        pipeline.hincrby.assert_not_called()
        redis.zcard.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_save_wraps_errors(self) -> None:
        redis, _ = _mock_redis()
        redis.hsetnx.side_effect = ConnectionError("down")
        store = RedisConversationStore(redis)

        with pytest.raises(RedisConnectionError):
            await store.save_conversation(_record())

    @pytest.mark.asyncio
    async def test_get_history_decodes_records(self) -> None:
        redis, _ = _mock_redis()
        redis.zrange.return_value = [b"m1"]
        redis.hmget.return_value = [json.dumps(_record().to_dict()).encode()]
        store = RedisConversationStore(redis)

        history = await store.get_history("5511@c.us", limit=10)

        assert history == [_record()]
        redis.zrange.assert_awaited_once_with("zapbot:conv:5511@c.us:index", -10, -1)

    @pytest.mark.asyncio
    async def test_get_stats(self) -> None:
        redis, _ = _mock_redis()
        redis.hgetall.return_value = {b"messages": b"7", b"commands": b"2"}
        redis.scard.return_value = 3
        store = RedisConversationStore(redis)

        stats = await store.get_stats()

        assert (stats.total_messages, stats.total_commands, stats.unique_conversations) == (7, 2, 3)

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self) -> None:
        redis, _ = _mock_redis()
        redis.ping.side_effect = ConnectionError("down")
        assert await RedisConversationStore(redis).ping() is False


class TestRedisRateLimitStore:
    """Testes do RedisRateLimitStore."""

    @pytest.mark.asyncio
    async def test_consume_runs_lua_script(self) -> None:
        redis, _ = _mock_redis()
        redis.eval.return_value = [1, 3, 61_000]
        store = RedisRateLimitStore(redis, key_prefix="t")

        outcome = await store.consume("5511@c.us", window_ms=60_000, max_requests=10, now_ms=1000)

        redis.eval.assert_awaited_once_with(
            CONSUME_SCRIPT, 1, "t:ratelimit:5511@c.us", 60_000, 10, 1000
        )
        assert outcome.allowed is True
        assert outcome.window.count == 3
        assert outcome.window.reset_at_ms == 61_000

    @pytest.mark.asyncio
    async def test_consume_denied(self) -> None:
        redis, _ = _mock_redis()
        redis.eval.return_value = [0, 10, 61_000]
        outcome = await RedisRateLimitStore(redis).consume(
            "c", window_ms=60_000, max_requests=10, now_ms=1000
        )
        assert outcome.allowed is False

    @pytest.mark.asyncio
    async def test_consume_wraps_errors(self) -> None:
        redis, _ = _mock_redis()
        redis.eval.side_effect = ConnectionError("down")
        with pytest.raises(RedisConnectionError):
            await RedisRateLimitStore(redis).consume("c", window_ms=1, max_requests=1, now_ms=0)

    @pytest.mark.asyncio
    async def test_get_missing_and_present(self) -> None:
        redis, _ = _mock_redis()
        store = RedisRateLimitStore(redis)

        redis.hgetall.return_value = {}
        assert await store.get("c") is None

        redis.hgetall.return_value = {b"count": b"4", b"reset_at": b"9000"}
        window = await store.get("c")
        assert window is not None
        assert (window.count, window.reset_at_ms) == (4, 9000)

    @pytest.mark.asyncio
    async def test_cleanup_expired_deletes_only_stale(self) -> None:
        redis, _ = _mock_redis()

        async def scan_iter(**_kwargs):
            for key in (b"zapbot:ratelimit:a", b"zapbot:ratelimit:b"):
                yield key

        redis.scan_iter = scan_iter
        redis.hget.side_effect = [b"500", b"5000"]
        redis.delete.return_value = 1
        store = RedisRateLimitStore(redis)

        assert await store.cleanup_expired(now_ms=1000) == 1
        redis.delete.assert_awaited_once_with(b"zapbot:ratelimit:a")


class TestRedisCommandStatsStore:
    @pytest.mark.asyncio
    async def test_increment_and_get_all(self) -> None:
        redis, _ = _mock_redis()
        redis.hincrby.return_value = 5
        redis.hgetall.return_value = {b"ping": b"5"}
        store = RedisCommandStatsStore(redis, key_prefix="t")

        assert await store.increment("ping") == 5
        redis.hincrby.assert_awaited_once_with("t:commands:usage", "ping", 1)
        assert await store.get_all() == {"ping": 5}

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self) -> None:
        redis, _ = _mock_redis()
        redis.hincrby.side_effect = ConnectionError("down")
        with pytest.raises(RedisConnectionError):
            await RedisCommandStatsStore(redis).increment("ping")
