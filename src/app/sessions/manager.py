"""Gerenciador da sessão WhatsApp.

Dono exclusivo da única sessão do processo: conduz a máquina de estados
da conexão, renova o QR code enquanto ninguém o escaneia, roda o probe de
liveness enquanto conectado e reconecta com backoff exponencial.

Timers por estado (mutuamente exclusivos):
    - AWAITING_CREDENTIAL: renovação de QR
    - CONNECTED: probe de liveness
    - RECONNECTING: no máximo uma tentativa agendada por vez

Toda mensagem recebida é persistida antes de ser emitida; falha de
persistência degrada o histórico, nunca o processamento.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any

from app.constants.whatsapp import DisconnectReason
from app.domain.messages import ConversationRecord, InboundEvent, now_ms
from app.observability import record_reconnect
from app.sessions.events import SessionEvent, SessionEventBus
from config.logging import preview
from fsm import ConnectionState, ConnectionStateMachine
from utils.errors import NotConnectedError

if TYPE_CHECKING:
    from collections.abc import Callable

    from app.domain.messages import DeliveryReceipt
    from app.protocols.chat_client import ChatClientProtocol
    from app.protocols.conversation_store import ConversationStoreProtocol
    from app.sessions.events import EventCallback
    from config.settings.whatsapp import WhatsAppSettings

logger = logging.getLogger(__name__)

# Fração máxima de jitter sobre o delay já limitado pelo teto
JITTER_RATIO = 0.1

# Estado reportado pela rede quando a sessão está saudável
CONNECTED_REMOTE_STATE = "CONNECTED"


class SessionManager:
    """Ciclo de vida da sessão WhatsApp.

    Implementa SessionListener: o cliente chama ``on_*`` e o manager
    traduz em transições, timers e eventos.

    Args:
        client: Cliente da rede de chat (bridge)
        settings: Intervalos e limites da sessão
        conversation_store: Histórico de conversas
        command_prefix: Prefixo usado para marcar registros como comando
        rng: Fonte de aleatoriedade do jitter (0.0 <= x < 1.0)
        clock: Epoch em ms
    """

    def __init__(
        self,
        client: ChatClientProtocol,
        settings: WhatsAppSettings,
        conversation_store: ConversationStoreProtocol,
        *,
        command_prefix: str = "!",
        rng: Callable[[], float] = random.random,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._client = client
        self._settings = settings
        self._conversation_store = conversation_store
        self._command_prefix = command_prefix
        self._rng = rng
        self._clock = clock

        self._machine = ConnectionStateMachine(session_name=settings.session_name)
        self._events = SessionEventBus()

        self._reconnect_attempts = 0
        self._last_credential_at: int | None = None
        self._closing = False

        self._credential_task: asyncio.Task[None] | None = None
        self._probe_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    # ──────────────────────────────────────────────────────────────
    # Consulta
    # ──────────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._machine.current_state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def is_reconnecting(self) -> bool:
        pending = self._reconnect_task is not None and not self._reconnect_task.done()
        return pending or self.state == ConnectionState.RECONNECTING

    def status(self) -> dict[str, Any]:
        """Snapshot para /status e comando ``status``."""
        return {
            "state": self.state.value,
            "session_name": self._settings.session_name,
            "reconnect_attempts": self._reconnect_attempts,
            "max_reconnect_attempts": self._settings.max_reconnect_attempts,
            "is_reconnecting": self.is_reconnecting,
            "last_credential_at": self._last_credential_at,
            "transition_count": self._machine.transition_count,
        }

    def history(self) -> list[dict[str, Any]]:
        return self._machine.get_history_summary()

    def subscribe(self, event: SessionEvent, callback: EventCallback) -> Callable[[], None]:
        """Inscreve callback em um evento; retorna função de cancelamento."""
        return self._events.subscribe(event, callback)

    # ──────────────────────────────────────────────────────────────
    # Ciclo de vida
    # ──────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Inicia a sessão.

        De FAILED, reinicia a máquina em DISCONNECTED e zera as tentativas.
        O cliente conduz as transições seguintes via callbacks.

        Raises:
            BridgeConnectionError: Falha ao iniciar o cliente.
        """
        if self.state == ConnectionState.FAILED:
            logger.info("session_restart_from_failed")
            self._machine.reset()
            self._reconnect_attempts = 0

        if self.state != ConnectionState.DISCONNECTED:
            logger.warning("session_already_initialized", extra={"state": self.state.value})
            return

        self._closing = False
        logger.info("session_initializing", extra={"session_name": self._settings.session_name})
        try:
            await self._client.start(self)
        except Exception:
            logger.exception("session_initialize_failed")
            raise

    async def destroy(self) -> None:
        """Cancela todos os timers e só então fecha o cliente.

        Raises:
            Exception: Erro do cliente ao fechar (logado e propagado).
        """
        self._closing = True
        pending = [
            task
            for task in (self._credential_task, self._probe_task, self._reconnect_task)
            if self._cancel(task)
        ]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._credential_task = None
        self._probe_task = None
        self._reconnect_task = None

        if self.state not in (ConnectionState.DISCONNECTED, ConnectionState.FAILED):
            await self._transition(ConnectionState.DISCONNECTED, "destroy")

        try:
            await self._client.close()
        except Exception:
            logger.exception("session_client_close_failed")
            raise
        logger.info("session_destroyed")

    async def send(self, conversation_id: str, text: str) -> DeliveryReceipt:
        """Envia texto para uma conversa.

        Raises:
            NotConnectedError: Sessão fora de CONNECTED.
        """
        if self.state != ConnectionState.CONNECTED:
            raise NotConnectedError(self.state.value)
        receipt = await self._client.send_text(conversation_id, text)
        logger.debug(
            "session_message_sent",
            extra={"conversation_id": conversation_id, "message_id": receipt.message_id},
        )
        return receipt

    # ──────────────────────────────────────────────────────────────
    # SessionListener
    # ──────────────────────────────────────────────────────────────

    async def on_credential(self, credential: str) -> None:
        if not await self._transition(ConnectionState.AWAITING_CREDENTIAL, "qr"):
            return
        self._last_credential_at = self._clock()
        logger.info("session_credential_issued")
        await self._events.emit(SessionEvent.CREDENTIAL_ISSUED, {"credential": credential})
        self._restart_credential_refresh()

    async def on_authenticated(self) -> None:
        if await self._transition(ConnectionState.AUTHENTICATING, "authenticated"):
            await self._events.emit(SessionEvent.AUTHENTICATED)

    async def on_auth_failure(self, reason: str) -> None:
        logger.warning("session_auth_failure", extra={"reason": reason})
        await self._events.emit(SessionEvent.AUTH_FAILURE, {"reason": reason})
        if self.state == ConnectionState.AUTHENTICATING:
            await self._transition(ConnectionState.AWAITING_CREDENTIAL, "auth_failure")

    async def on_ready(self) -> None:
        if await self._transition(ConnectionState.CONNECTED, "ready"):
            self._reconnect_attempts = 0
            logger.info("session_ready")
            await self._events.emit(SessionEvent.READY)

    async def on_message(self, data: dict[str, Any]) -> None:
        event = InboundEvent.from_bridge(data)
        record = ConversationRecord.from_event(event, self._command_prefix)
        try:
            await self._conversation_store.save_conversation(record)
        except Exception as exc:
            logger.warning(
                "conversation_persist_failed",
                extra={
                    "conversation_id": event.conversation_id,
                    "error_type": type(exc).__name__,
                },
            )
        logger.debug(
            "session_message_received",
            extra={**event.to_log_dict(), "preview": preview(event.body)},
        )
        await self._events.emit(SessionEvent.MESSAGE_RECEIVED, {"event": event})

    async def on_disconnected(self, reason: str) -> None:
        parsed = DisconnectReason.parse(reason)
        logger.warning("session_disconnected", extra={"reason": parsed.value})
        await self._events.emit(SessionEvent.DISCONNECTED, {"reason": parsed.value})

        if self._closing or self.state == ConnectionState.FAILED:
            return
        if parsed == DisconnectReason.NAVIGATION:
            await self._transition(ConnectionState.DISCONNECTED, "navigation")
            return
        await self._begin_reconnect("disconnected")

    # ──────────────────────────────────────────────────────────────
    # Reconexão
    # ──────────────────────────────────────────────────────────────

    def compute_backoff_ms(self, attempt: int) -> int:
        """Delay da tentativa ``attempt`` (0-based).

        ``min(base * 2^attempt, cap)`` mais jitter uniforme de até 10%.
        """
        capped = min(
            self._settings.reconnect_interval_ms * (2**attempt),
            self._settings.reconnect_max_delay_ms,
        )
        return int(capped + self._rng() * JITTER_RATIO * capped)

    def schedule_reconnection(self) -> bool:
        """Agenda a próxima tentativa.

        No-op (retorna False) se já existe uma tentativa pendente, se o
        manager está fechando ou se a sessão está em FAILED.
        """
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return False
        if self._closing or self.state == ConnectionState.FAILED:
            return False

        delay_ms = self.compute_backoff_ms(self._reconnect_attempts)
        self._reconnect_attempts += 1
        attempt = self._reconnect_attempts
        record_reconnect(attempt, delay_ms, self._settings.max_reconnect_attempts)
        logger.info("session_reconnect_scheduled", extra={"attempt": attempt, "delay_ms": delay_ms})
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms, attempt))
        return True

    async def _begin_reconnect(self, trigger: str) -> None:
        if self.state != ConnectionState.RECONNECTING:
            if not await self._transition(ConnectionState.RECONNECTING, trigger):
                return
        if self._reconnect_attempts >= self._settings.max_reconnect_attempts:
            await self._exhaust()
            return
        if self.schedule_reconnection():
            await self._events.emit(
                SessionEvent.RECONNECTING,
                {"attempt": self._reconnect_attempts, "trigger": trigger},
            )

    async def _reconnect_after(self, delay_ms: int, attempt: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        try:
            await self._safe_close_client()
            await self._client.start(self)
        except Exception as exc:
            logger.warning(
                "session_reconnect_failed",
                extra={"attempt": attempt, "error_type": type(exc).__name__},
            )
            self._reconnect_task = None
            await self._events.emit(
                SessionEvent.RECONNECT_FAILED,
                {"attempt": attempt, "error": str(exc)},
            )
            if self._reconnect_attempts >= self._settings.max_reconnect_attempts:
                await self._exhaust()
            else:
                self.schedule_reconnection()
            return
        logger.info("session_reconnect_started", extra={"attempt": attempt})

    async def _exhaust(self) -> None:
        if self.state not in (ConnectionState.RECONNECTING, ConnectionState.FAILED):
            await self._transition(ConnectionState.RECONNECTING, "reconnect_exhausted")
        if not await self._transition(ConnectionState.FAILED, "reconnect_exhausted"):
            return
        logger.error(
            "session_reconnect_exhausted",
            extra={"attempts": self._reconnect_attempts},
        )
        await self._events.emit(
            SessionEvent.RECONNECT_EXHAUSTED,
            {"attempts": self._reconnect_attempts},
        )

    async def _safe_close_client(self) -> None:
        try:
            await self._client.close()
        except Exception:
            logger.debug("session_client_close_before_reconnect_failed", exc_info=True)

    # ──────────────────────────────────────────────────────────────
    # Timers por estado
    # ──────────────────────────────────────────────────────────────

    def _restart_credential_refresh(self) -> None:
        self._cancel(self._credential_task)
        self._credential_task = asyncio.create_task(self._credential_refresh_loop())

    async def _credential_refresh_loop(self) -> None:
        interval = self._settings.qr_refresh_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            if self.state != ConnectionState.AWAITING_CREDENTIAL:
                return
            try:
                await self._client.request_new_credential()
            except Exception:
                logger.warning("session_credential_refresh_failed", exc_info=True)
                continue
            logger.info("session_credential_refreshed")
            await self._events.emit(SessionEvent.CREDENTIAL_REFRESHED)
            # Novo QR recebido durante o refresh já reiniciou o timer
            if self._credential_task is not asyncio.current_task():
                return

    async def _liveness_loop(self) -> None:
        interval = self._settings.health_check_interval_ms / 1000
        while self.state == ConnectionState.CONNECTED:
            await asyncio.sleep(interval)
            if self.state != ConnectionState.CONNECTED:
                return
            await self.run_liveness_probe()

    async def run_liveness_probe(self) -> bool:
        """Executa um probe; True se a rede reporta CONNECTED.

        Probe com erro ou timeout dispara reconexão (se ainda não em
        andamento). Estado remoto diferente de CONNECTED apenas emite.
        """
        timeout = self._settings.health_check_timeout_ms / 1000
        try:
            reported = await asyncio.wait_for(self._client.get_state(), timeout)
        except Exception as exc:
            logger.warning("session_health_check_error", extra={"error_type": type(exc).__name__})
            await self._events.emit(
                SessionEvent.HEALTH_CHECK_FAILED,
                {"reason": "probe_error", "error": type(exc).__name__},
            )
            if not self.is_reconnecting:
                await self._begin_reconnect("health_check_failed")
            return False

        if reported != CONNECTED_REMOTE_STATE:
            logger.warning("session_health_check_unhealthy", extra={"reported_state": reported})
            await self._events.emit(
                SessionEvent.HEALTH_CHECK_FAILED,
                {"reason": "not_connected", "reported_state": reported},
            )
            return False
        return True

    # ──────────────────────────────────────────────────────────────
    # Transições
    # ──────────────────────────────────────────────────────────────

    async def _transition(self, target: ConnectionState, trigger: str) -> bool:
        previous = self.state
        result = self._machine.transition(target, trigger)
        if not result.success:
            logger.warning(
                "session_transition_rejected",
                extra={"from_state": previous.value, "to_state": target.value, "trigger": trigger},
            )
            return False

        if previous == ConnectionState.AWAITING_CREDENTIAL and target != previous:
            self._cancel(self._credential_task)
            self._credential_task = None
        if previous == ConnectionState.CONNECTED and target != previous:
            self._cancel(self._probe_task)
            self._probe_task = None
        if target == ConnectionState.CONNECTED and previous != target:
            self._probe_task = asyncio.create_task(self._liveness_loop())

        logger.info(
            "session_state_changed",
            extra={"from_state": previous.value, "to_state": target.value, "trigger": trigger},
        )
        await self._events.emit(
            SessionEvent.STATE_CHANGED,
            {"from_state": previous.value, "to_state": target.value, "trigger": trigger},
        )
        return True

    @staticmethod
    def _cancel(task: asyncio.Task[None] | None) -> bool:
        """Cancela ``task``; nunca cancela a task corrente.

        Returns:
            True se um cancelamento foi solicitado.
        """
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        return True
