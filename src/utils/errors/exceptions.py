"""Exceções de domínio do zapbot.

Taxonomia única para todo o motor: registro de comandos, sessão,
plugins, webhooks e infraestrutura. Limite de taxa nunca é exceção:
o chamador consulta ``RateLimitResult.allowed``.
"""

from __future__ import annotations


class ZapbotError(Exception):
    """Base de todas as exceções do domínio."""


class ValidationError(ZapbotError):
    """Registro ou entrada inválida (fatal apenas para a chamada)."""


class NotFoundError(ZapbotError):
    """Comando ou plugin inexistente."""


class AuthenticationError(ZapbotError):
    """Assinatura de webhook inválida ou timestamp fora da tolerância.

    Attributes:
        reason: Motivo curto, seguro para log (nunca devolvido ao cliente).
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PluginLifecycleError(ZapbotError):
    """Falha em initialize/destroy de plugin (isolada, apenas logada)."""

    def __init__(self, plugin_name: str, phase: str, cause: BaseException) -> None:
        super().__init__(f"plugin {plugin_name} falhou em {phase}: {cause}")
        self.plugin_name = plugin_name
        self.phase = phase
        self.cause = cause


class ReconnectExhaustedError(ZapbotError):
    """Tentativas de reconexão esgotadas; sessão em FAILED."""


class NotConnectedError(ZapbotError):
    """Envio tentado com sessão fora do estado CONNECTED."""

    def __init__(self, state: str) -> None:
        super().__init__(f"sessão não conectada (estado={state})")
        self.state = state


class InfrastructureError(RuntimeError):
    """Base para falhas de infraestrutura transitórias."""


class RedisConnectionError(InfrastructureError):
    """Falha de conexão/timeout ao acessar Redis."""


class BridgeConnectionError(InfrastructureError):
    """Falha de comunicação com a bridge do WhatsApp."""
