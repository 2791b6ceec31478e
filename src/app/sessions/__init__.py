"""Sessão WhatsApp: ciclo de vida, reconexão e eventos tipados."""

from app.sessions.events import SessionEvent, SessionEventBus
from app.sessions.manager import JITTER_RATIO, SessionManager

__all__ = [
    "JITTER_RATIO",
    "SessionEvent",
    "SessionEventBus",
    "SessionManager",
]
