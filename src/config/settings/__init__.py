"""Agregador de settings do zapbot.

Re-exporta todas as settings e funções de cada módulo.
Organização por domínio para isolamento de mudanças.
"""

from __future__ import annotations

from config.settings.base import (
    BaseSettings,
    Environment,
    StoreBackend,
    StoreSettings,
    get_base_settings,
    get_store_settings,
)
from config.settings.bot import BotSettings, get_bot_settings
from config.settings.rate_limit import RateLimitSettings, get_rate_limit_settings
from config.settings.webhook import (
    SIGNATURE_VERSION,
    WebhookSettings,
    get_webhook_settings,
)
from config.settings.whatsapp import (
    DEFAULT_BRIDGE_URL,
    WhatsAppSettings,
    get_whatsapp_settings,
)

__all__ = [
    "DEFAULT_BRIDGE_URL",
    "SIGNATURE_VERSION",
    "BaseSettings",
    "BotSettings",
    "Environment",
    "RateLimitSettings",
    "StoreBackend",
    "StoreSettings",
    "WebhookSettings",
    "WhatsAppSettings",
    "get_base_settings",
    "get_bot_settings",
    "get_rate_limit_settings",
    "get_store_settings",
    "get_webhook_settings",
    "get_whatsapp_settings",
]
