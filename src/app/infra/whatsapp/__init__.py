"""Integração com a bridge do WhatsApp Web."""

from app.infra.whatsapp.bridge_client import WhatsAppBridgeClient

__all__ = ["WhatsAppBridgeClient"]
