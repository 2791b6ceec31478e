"""Assinatura e verificação HMAC-SHA256 de webhooks.

Formato da assinatura: hex minúsculo de ``HMAC-SHA256(secret, payload)``
(64 caracteres). A variante com headers assina ``"{timestamp}.{body}"``
e rejeita timestamps mais antigos que a tolerância configurada.

Anti-replay depende apenas da tolerância de timestamp: não existe cache
de assinaturas consumidas, então um reenvio idêntico dentro da janela
é aceito como retentativa legítima.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import jwt

from app.domain.messages import now_ms
from config.settings.webhook import SIGNATURE_VERSION
from utils.errors import AuthenticationError

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"
VERSION_HEADER = "x-webhook-version"

JWT_ALGORITHM = "HS256"

# Hex de SHA-256
SIGNATURE_LENGTH = 64


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign_payload(payload: str | bytes, secret: str | bytes) -> str:
    """Calcula a assinatura HMAC-SHA256 (hex minúsculo) do payload."""
    return hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: str | bytes, signature: str, secret: str | bytes) -> bool:
    """Verifica assinatura em tempo constante.

    Tamanho divergente retorna False antes da comparação constante: o
    tamanho de um digest SHA-256 em hex é fixo e público, então nada vaza.
    Assinaturas com caracteres fora de ASCII nunca são hex válido.
    """
    expected = sign_payload(payload, secret)
    if not signature.isascii() or len(signature) != len(expected):
        return False
    return hmac.compare_digest(expected, signature.lower())


@dataclass(frozen=True, slots=True)
class SignedEnvelope:
    """Envelope JWT de saída com assinatura HMAC do próprio token."""

    token: str
    signature: str
    payload: dict[str, Any]


class WebhookAuthenticator:
    """Autenticação de webhooks de entrada e assinatura dos de saída.

    Operações puras e síncronas; seguras sob concorrência.

    Args:
        secret: Secret HMAC compartilhado
        timeout_ms: Tolerância do header de timestamp
        envelope_key: Chave HS256 dos envelopes (default: ``secret``)
        envelope_ttl_seconds: Validade dos envelopes
        api_key: Chave de API aceita por ``verify_api_key``
        clock: Fonte de tempo em ms (injetável para testes)
    """

    def __init__(
        self,
        secret: str,
        *,
        timeout_ms: int = 30_000,
        envelope_key: str | None = None,
        envelope_ttl_seconds: int = 3600,
        api_key: str = "",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._secret = secret
        self._timeout_ms = timeout_ms
        self._envelope_key = envelope_key or secret
        self._envelope_ttl_seconds = envelope_ttl_seconds
        self._api_key = api_key
        self._clock = clock

    def sign(self, payload: str | bytes) -> str:
        return sign_payload(payload, self._secret)

    def verify(self, payload: str | bytes, signature: str) -> bool:
        return verify_signature(payload, signature, self._secret)

    def security_headers(self, body: str | bytes) -> dict[str, str]:
        """Headers de assinatura para uma requisição de saída."""
        timestamp = str(self._clock())
        material = _to_bytes(timestamp) + b"." + _to_bytes(body)
        return {
            SIGNATURE_HEADER: self.sign(material),
            TIMESTAMP_HEADER: timestamp,
            VERSION_HEADER: SIGNATURE_VERSION,
        }

    def verify_headers(self, headers: Mapping[str, str], body: str | bytes) -> None:
        """Valida a variante com timestamp.

        Args:
            headers: Headers da requisição (chaves em minúsculas)
            body: Corpo bruto

        Raises:
            AuthenticationError: Header ausente, versão desconhecida,
                timestamp fora da tolerância ou assinatura inválida.
        """
        signature = headers.get(SIGNATURE_HEADER)
        timestamp = headers.get(TIMESTAMP_HEADER)
        version = headers.get(VERSION_HEADER)

        if not signature or not timestamp:
            raise AuthenticationError("missing_headers")
        if version != SIGNATURE_VERSION:
            raise AuthenticationError("unsupported_version")
        try:
            issued_at = int(timestamp)
        except ValueError as exc:
            raise AuthenticationError("invalid_timestamp") from exc
        if self._clock() - issued_at > self._timeout_ms:
            raise AuthenticationError("timestamp_expired")

        material = _to_bytes(timestamp) + b"." + _to_bytes(body)
        if not self.verify(material, signature):
            raise AuthenticationError("invalid_signature")

    def create_envelope(self, event: str, data: dict[str, Any]) -> SignedEnvelope:
        """Cria envelope JWT ``{event, data, timestamp, iat, exp}`` + HMAC do token."""
        issued_ms = self._clock()
        iat = issued_ms // 1000
        payload: dict[str, Any] = {
            "event": event,
            "data": data,
            "timestamp": issued_ms,
            "iat": iat,
            "exp": iat + self._envelope_ttl_seconds,
        }
        token = jwt.encode(payload, self._envelope_key, algorithm=JWT_ALGORITHM)
        return SignedEnvelope(token=token, signature=self.sign(token), payload=payload)

    def verify_envelope(self, token: str, signature: str) -> dict[str, Any] | None:
        """Valida as duas camadas (HMAC do token e JWT) e a expiração.

        Returns:
            Payload decodificado, ou None se qualquer camada falhar.
        """
        if not self.verify(token, signature):
            return None
        try:
            return jwt.decode(
                token,
                self._envelope_key,
                algorithms=[JWT_ALGORITHM],
                options={"verify_iat": False},
                leeway=0,
            )
        except jwt.InvalidTokenError:
            return None

    def verify_api_key(self, key: str | None) -> bool:
        """Compara a chave de API em tempo constante (False se não configurada)."""
        if not self._api_key or not key:
            return False
        return hmac.compare_digest(_to_bytes(self._api_key), _to_bytes(key))


def canonical_json(data: Any) -> str:
    """Serialização estável (chaves ordenadas, sem espaços) para assinatura."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
