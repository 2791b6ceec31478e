"""Constantes e enums do protocolo WhatsApp Web (via bridge)."""

from __future__ import annotations

from enum import StrEnum

USER_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"
BROADCAST_SUFFIX = "@broadcast"


class DisconnectReason(StrEnum):
    """Motivos de desconexão reportados pela bridge.

    NAVIGATION é um fechamento limpo (a página do WhatsApp Web navegou
    para fora) e não dispara reconexão.
    """

    NAVIGATION = "NAVIGATION"
    LOGOUT = "LOGOUT"
    CONFLICT = "CONFLICT"
    UNPAIRED = "UNPAIRED"
    TIMEOUT = "TIMEOUT"
    BRIDGE_CLOSED = "BRIDGE_CLOSED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> DisconnectReason:
        """Converte o motivo bruto da bridge; valores desconhecidos viram UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNKNOWN


class ConversationType(StrEnum):
    """Tipo de conversa derivado do sufixo do identificador."""

    USER = "user"
    GROUP = "group"
    BROADCAST = "broadcast"
    UNKNOWN = "unknown"
