"""Protocolos e contratos do core da aplicação."""

from .chat_client import ChatClientProtocol, SessionListener
from .command_stats_store import CommandStatsStoreProtocol
from .conversation_store import ConversationStoreProtocol
from .rate_limit_store import ConsumeOutcome, RateLimitStoreProtocol, RateWindow

__all__ = [
    "ChatClientProtocol",
    "CommandStatsStoreProtocol",
    "ConsumeOutcome",
    "ConversationStoreProtocol",
    "RateLimitStoreProtocol",
    "RateWindow",
    "SessionListener",
]
