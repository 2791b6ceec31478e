"""Assinatura e autenticação de webhooks (HMAC-SHA256 + envelopes JWT)."""

from .signature import (
    SIGNATURE_HEADER,
    SIGNATURE_LENGTH,
    TIMESTAMP_HEADER,
    VERSION_HEADER,
    SignedEnvelope,
    WebhookAuthenticator,
    canonical_json,
    sign_payload,
    verify_signature,
)

__all__ = [
    "SIGNATURE_HEADER",
    "SIGNATURE_LENGTH",
    "TIMESTAMP_HEADER",
    "VERSION_HEADER",
    "SignedEnvelope",
    "WebhookAuthenticator",
    "canonical_json",
    "sign_payload",
    "verify_signature",
]
