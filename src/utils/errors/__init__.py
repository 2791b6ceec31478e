"""Exceções utilitárias compartilhadas."""

from .exceptions import (
    AuthenticationError,
    BridgeConnectionError,
    InfrastructureError,
    NotConnectedError,
    NotFoundError,
    PluginLifecycleError,
    ReconnectExhaustedError,
    RedisConnectionError,
    ValidationError,
    ZapbotError,
)

__all__ = [
    "AuthenticationError",
    "BridgeConnectionError",
    "InfrastructureError",
    "NotConnectedError",
    "NotFoundError",
    "PluginLifecycleError",
    "ReconnectExhaustedError",
    "RedisConnectionError",
    "ValidationError",
    "ZapbotError",
]
