"""Settings da sessão WhatsApp.

Conexão com a bridge (processo que executa o WhatsApp Web), renovação de
QR code, reconexão com backoff exponencial e probe de liveness.
Todos os intervalos em milissegundos.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_BRIDGE_URL: str = "ws://localhost:3001"


@dataclass(frozen=True)
class WhatsAppSettings:
    """Configurações da sessão WhatsApp.

    Attributes:
        session_name: Nome da sessão persistida pela bridge
        bridge_url: URL WebSocket da bridge
        bridge_token: Token de autenticação na bridge
        request_timeout_ms: Timeout de requisições enviadas à bridge
        qr_refresh_interval_ms: Intervalo de renovação do QR não escaneado
        reconnect_interval_ms: Delay base do backoff de reconexão
        reconnect_max_delay_ms: Teto do delay de reconexão (antes do jitter)
        max_reconnect_attempts: Tentativas antes do estado FAILED
        health_check_interval_ms: Período do probe de liveness
        health_check_timeout_ms: Timeout de cada probe
    """

    session_name: str = "zapbot-session"
    bridge_url: str = DEFAULT_BRIDGE_URL
    bridge_token: str = ""
    request_timeout_ms: int = 30_000

    qr_refresh_interval_ms: int = 30_000

    reconnect_interval_ms: int = 5_000
    reconnect_max_delay_ms: int = 30_000
    max_reconnect_attempts: int = 10

    health_check_interval_ms: int = 30_000
    health_check_timeout_ms: int = 10_000

    def validate(self) -> list[str]:
        """Valida configurações da sessão.

        Returns:
            Lista de erros de validação (vazia = tudo OK).
        """
        errors: list[str] = []

        if not self.session_name:
            errors.append("SESSION_NAME não configurado")

        if not self.bridge_url.startswith(("ws://", "wss://")):
            errors.append("BRIDGE_URL deve usar ws:// ou wss://")

        for name, value in (
            ("QR_REFRESH_INTERVAL_MS", self.qr_refresh_interval_ms),
            ("RECONNECT_INTERVAL_MS", self.reconnect_interval_ms),
            ("HEALTH_CHECK_INTERVAL_MS", self.health_check_interval_ms),
            ("HEALTH_CHECK_TIMEOUT_MS", self.health_check_timeout_ms),
            ("BRIDGE_REQUEST_TIMEOUT_MS", self.request_timeout_ms),
        ):
            if value <= 0:
                errors.append(f"{name} deve ser > 0")

        if self.reconnect_max_delay_ms < self.reconnect_interval_ms:
            errors.append("RECONNECT_MAX_DELAY_MS deve ser >= RECONNECT_INTERVAL_MS")

        if self.max_reconnect_attempts < 1:
            errors.append("MAX_RECONNECT_ATTEMPTS deve ser >= 1")

        return errors


def _load_from_env() -> WhatsAppSettings:
    """Carrega WhatsAppSettings a partir de variáveis de ambiente."""
    return WhatsAppSettings(
        session_name=os.getenv("SESSION_NAME", "zapbot-session"),
        bridge_url=os.getenv("BRIDGE_URL", DEFAULT_BRIDGE_URL),
        bridge_token=os.getenv("BRIDGE_TOKEN", ""),
        request_timeout_ms=int(os.getenv("BRIDGE_REQUEST_TIMEOUT_MS", "30000")),
        qr_refresh_interval_ms=int(os.getenv("QR_REFRESH_INTERVAL_MS", "30000")),
        reconnect_interval_ms=int(os.getenv("RECONNECT_INTERVAL_MS", "5000")),
        reconnect_max_delay_ms=int(os.getenv("RECONNECT_MAX_DELAY_MS", "30000")),
        max_reconnect_attempts=int(os.getenv("MAX_RECONNECT_ATTEMPTS", "10")),
        health_check_interval_ms=int(os.getenv("HEALTH_CHECK_INTERVAL_MS", "30000")),
        health_check_timeout_ms=int(os.getenv("HEALTH_CHECK_TIMEOUT_MS", "10000")),
    )


@lru_cache(maxsize=1)
def get_whatsapp_settings() -> WhatsAppSettings:
    """Retorna instância cacheada de WhatsAppSettings."""
    return _load_from_env()
