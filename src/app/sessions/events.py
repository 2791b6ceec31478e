"""Canal tipado de eventos de ciclo de vida da sessão.

Substitui nomes de evento em string por um enum fechado. Callbacks podem
ser síncronos ou assíncronos; falha em um callback é logada e não
impede os demais.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

EventPayload = dict[str, Any]
EventCallback = Callable[[EventPayload], Awaitable[None] | None]


class SessionEvent(StrEnum):
    """Eventos emitidos pelo SessionManager."""

    STATE_CHANGED = "state_changed"
    CREDENTIAL_ISSUED = "credential_issued"
    CREDENTIAL_REFRESHED = "credential_refreshed"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    READY = "ready"
    MESSAGE_RECEIVED = "message_received"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    RECONNECT_FAILED = "reconnect_failed"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"
    HEALTH_CHECK_FAILED = "health_check_failed"


class SessionEventBus:
    """Registro de callbacks por SessionEvent."""

    def __init__(self) -> None:
        self._subscribers: dict[SessionEvent, list[EventCallback]] = defaultdict(list)

    def subscribe(self, event: SessionEvent, callback: EventCallback) -> Callable[[], None]:
        """Registra callback; retorna função que cancela a inscrição."""
        self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def subscriber_count(self, event: SessionEvent) -> int:
        return len(self._subscribers.get(event, ()))

    async def emit(self, event: SessionEvent, payload: EventPayload | None = None) -> None:
        data = payload or {}
        for callback in list(self._subscribers.get(event, ())):
            try:
                result = callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("session_event_callback_failed", extra={"event": str(event)})
