"""Stores em memória: apenas para desenvolvimento e testes.

ATENÇÃO: Não usar em produção. Sem persistência entre reinícios.
Operações síncronas por baixo (sem ``await`` intermediário), o que as
torna atômicas dentro do event loop.
"""

from __future__ import annotations

from collections import defaultdict

from app.domain.messages import ConversationRecord, ConversationStats
from app.protocols.command_stats_store import CommandStatsStoreProtocol
from app.protocols.conversation_store import ConversationStoreProtocol
from app.protocols.rate_limit_store import (
    ConsumeOutcome,
    RateLimitStoreProtocol,
    RateWindow,
)


class MemoryConversationStore(ConversationStoreProtocol):
    """Histórico de conversas em memória, apenas para dev/test."""

    def __init__(self, max_per_conversation: int = 500) -> None:
        self._records: dict[str, dict[str, ConversationRecord]] = defaultdict(dict)
        self._max_per_conversation = max_per_conversation

    async def save_conversation(self, record: ConversationRecord) -> None:
        bucket = self._records[record.conversation_id]
        bucket[record.record_id] = record
        if len(bucket) > self._max_per_conversation:
            oldest = min(bucket.values(), key=lambda r: r.timestamp_ms)
            del bucket[oldest.record_id]

    async def get_history(
        self,
        conversation_id: str,
        *,
        limit: int = 50,
    ) -> list[ConversationRecord]:
        bucket = self._records.get(conversation_id, {})
        ordered = sorted(bucket.values(), key=lambda r: r.timestamp_ms)
        return ordered[-limit:] if limit > 0 else []

    async def get_stats(self) -> ConversationStats:
        records = [r for bucket in self._records.values() for r in bucket.values()]
        return ConversationStats(
            total_messages=len(records),
            total_commands=sum(1 for r in records if r.is_command),
            unique_conversations=sum(1 for bucket in self._records.values() if bucket),
        )

    async def cleanup(self, older_than_ms: int) -> int:
        removed = 0
        for conversation_id in list(self._records):
            bucket = self._records[conversation_id]
            stale = [rid for rid, r in bucket.items() if r.timestamp_ms < older_than_ms]
            for rid in stale:
                del bucket[rid]
            removed += len(stale)
            if not bucket:
                del self._records[conversation_id]
        return removed

    async def ping(self) -> bool:
        return True


class MemoryRateLimitStore(RateLimitStoreProtocol):
    """Janelas de rate limit em memória, apenas para dev/test."""

    def __init__(self) -> None:
        self._windows: dict[str, RateWindow] = {}

    async def consume(
        self,
        key: str,
        *,
        window_ms: int,
        max_requests: int,
        now_ms: int,
    ) -> ConsumeOutcome:
        window = self._windows.get(key)
        if window is None or window.is_expired(now_ms):
            window = RateWindow(count=1, reset_at_ms=now_ms + window_ms)
            self._windows[key] = window
            return ConsumeOutcome(allowed=True, window=window)
        if window.count >= max_requests:
            return ConsumeOutcome(allowed=False, window=window)
        window = RateWindow(count=window.count + 1, reset_at_ms=window.reset_at_ms)
        self._windows[key] = window
        return ConsumeOutcome(allowed=True, window=window)

    async def get(self, key: str) -> RateWindow | None:
        return self._windows.get(key)

    async def delete(self, key: str) -> bool:
        return self._windows.pop(key, None) is not None

    async def cleanup_expired(self, now_ms: int) -> int:
        expired = [k for k, w in self._windows.items() if w.is_expired(now_ms)]
        for key in expired:
            del self._windows[key]
        return len(expired)


class MemoryCommandStatsStore(CommandStatsStoreProtocol):
    """Contadores de comandos em memória, apenas para dev/test."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = defaultdict(int)

    async def increment(self, command_name: str) -> int:
        self._counts[command_name] += 1
        return self._counts[command_name]

    async def get_all(self) -> dict[str, int]:
        return dict(self._counts)
