"""Settings de webhooks (entrada assinada e notificações de saída)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config.settings.base.core import BaseSettings

SIGNATURE_VERSION: str = "1.0"


@dataclass(frozen=True)
class WebhookSettings:
    """Configurações de webhook.

    Attributes:
        secret: Secret HMAC-SHA256 compartilhado
        timeout_ms: Tolerância do header de timestamp
        jwt_secret: Chave dos envelopes JWT (usa ``secret`` se vazio)
        envelope_ttl_seconds: Validade dos envelopes JWT
        api_key: Chave de API para rotas administrativas
        outbound_url: Destino das notificações de ciclo de vida
        outbound_timeout_seconds: Timeout HTTP das notificações
        outbound_max_retries: Retentativas das notificações
    """

    secret: str = ""
    timeout_ms: int = 30_000
    jwt_secret: str = ""
    envelope_ttl_seconds: int = 3600
    api_key: str = ""
    outbound_url: str = ""
    outbound_timeout_seconds: float = 10.0
    outbound_max_retries: int = 3

    @property
    def envelope_key(self) -> str:
        """Chave efetiva de assinatura dos envelopes JWT."""
        return self.jwt_secret or self.secret

    def validate(self, base: BaseSettings) -> list[str]:
        """Valida configurações de webhook.

        Args:
            base: BaseSettings para verificar ambiente.

        Returns:
            Lista de erros de validação.
        """
        errors: list[str] = []

        if not self.secret and not base.is_development:
            errors.append("WEBHOOK_SECRET obrigatório em staging/production")

        if self.timeout_ms <= 0:
            errors.append("WEBHOOK_TIMEOUT_MS deve ser > 0")

        if self.envelope_ttl_seconds <= 0:
            errors.append("WEBHOOK_ENVELOPE_TTL_SECONDS deve ser > 0")

        if self.outbound_url and not self.outbound_url.startswith(("http://", "https://")):
            errors.append("OUTBOUND_WEBHOOK_URL deve ser http(s)")

        if self.outbound_max_retries < 0:
            errors.append("OUTBOUND_WEBHOOK_MAX_RETRIES deve ser >= 0")

        return errors


def _load_webhook_from_env() -> WebhookSettings:
    """Carrega WebhookSettings de variáveis de ambiente."""
    return WebhookSettings(
        secret=os.getenv("WEBHOOK_SECRET", ""),
        timeout_ms=int(os.getenv("WEBHOOK_TIMEOUT_MS", "30000")),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        envelope_ttl_seconds=int(os.getenv("WEBHOOK_ENVELOPE_TTL_SECONDS", "3600")),
        api_key=os.getenv("API_KEY", ""),
        outbound_url=os.getenv("OUTBOUND_WEBHOOK_URL", ""),
        outbound_timeout_seconds=float(os.getenv("OUTBOUND_WEBHOOK_TIMEOUT_SECONDS", "10")),
        outbound_max_retries=int(os.getenv("OUTBOUND_WEBHOOK_MAX_RETRIES", "3")),
    )


@lru_cache(maxsize=1)
def get_webhook_settings() -> WebhookSettings:
    """Retorna instância cacheada de WebhookSettings."""
    return _load_webhook_from_env()
