"""Stores: implementações concretas de persistência.

Módulos disponíveis:
    - memory_stores: Stores em memória para desenvolvimento/testes
    - redis_conversation_store: Histórico de conversas (Redis)
    - redis_rate_limit_store: Janelas de rate limit (Redis + Lua)
    - redis_command_stats_store: Contadores de uso de comandos (Redis)
"""

from __future__ import annotations

from app.infra.stores.memory_stores import (
    MemoryCommandStatsStore,
    MemoryConversationStore,
    MemoryRateLimitStore,
)
from app.infra.stores.redis_command_stats_store import RedisCommandStatsStore
from app.infra.stores.redis_conversation_store import RedisConversationStore
from app.infra.stores.redis_rate_limit_store import RedisRateLimitStore

__all__ = [
    "MemoryCommandStatsStore",
    "MemoryConversationStore",
    "MemoryRateLimitStore",
    "RedisCommandStatsStore",
    "RedisConversationStore",
    "RedisRateLimitStore",
]
