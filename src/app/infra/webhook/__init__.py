"""Webhooks de saída."""

from app.infra.webhook.notifier import ENVELOPE_SIGNATURE_HEADER, OutboundNotifier

__all__ = ["ENVELOPE_SIGNATURE_HEADER", "OutboundNotifier"]
