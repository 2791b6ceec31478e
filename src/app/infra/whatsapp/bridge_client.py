"""Cliente WebSocket da bridge do WhatsApp Web.

A bridge é um processo externo que roda o WhatsApp Web e expõe um
protocolo JSON sobre WebSocket:

    Comando (cliente → bridge):
        {"version": 1, "type": "send_text", "token": "...",
         "requestId": "<hex>", "payload": {...}}

    Resposta:
        {"version": 1, "type": "response", "requestId": "<hex>",
         "payload": {"ok": true, "result": {...}}}

    Eventos (bridge → cliente): qr, authenticated, auth_failure, ready,
    message, disconnected.

Eventos de ciclo de vida são repassados ao SessionListener na ordem de
chegada; mensagens são despachadas em tasks próprias para manter o
leitor livre para consumir respostas de comandos.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

import websockets

from app.domain.messages import DeliveryReceipt
from utils.errors import BridgeConnectionError

if TYPE_CHECKING:
    from app.protocols.chat_client import SessionListener
    from config.settings.whatsapp import WhatsAppSettings

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1

# Motivo reportado quando o próprio socket cai sem evento "disconnected"
BRIDGE_CLOSED_REASON = "BRIDGE_CLOSED"


class BridgeCommandError(BridgeConnectionError):
    """Bridge respondeu ``ok: false`` a um comando."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code


class WhatsAppBridgeClient:
    """Implementação de ChatClientProtocol sobre a bridge WebSocket.

    Args:
        settings: URL, token e timeouts da bridge
    """

    def __init__(self, settings: WhatsAppSettings) -> None:
        self._settings = settings
        self._ws: Any | None = None
        self._listener: SessionListener | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._inbound_tasks: set[asyncio.Task[None]] = set()
        self._send_lock = asyncio.Lock()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def start(self, listener: SessionListener) -> None:
        """Conecta na bridge e pede o início da sessão.

        Raises:
            BridgeConnectionError: Falha de conexão ou comando ``start`` recusado.
        """
        self._listener = listener
        self._closing = False
        try:
            self._ws = await websockets.connect(
                self._settings.bridge_url,
                ping_interval=20,
                ping_timeout=20,
            )
        except (OSError, websockets.WebSocketException) as exc:
            raise BridgeConnectionError(f"falha ao conectar na bridge: {exc}") from exc

        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info("bridge_connected", extra={"bridge_url": self._settings.bridge_url})
        await self._send_command("start", {"session": self._settings.session_name})

    async def get_state(self) -> str:
        result = await self._send_command("get_state", {})
        return str(result.get("state", "UNKNOWN"))

    async def send_text(self, conversation_id: str, text: str) -> DeliveryReceipt:
        result = await self._send_command("send_text", {"to": conversation_id, "text": text})
        return DeliveryReceipt(
            message_id=str(result.get("messageId") or uuid.uuid4().hex),
            conversation_id=conversation_id,
        )

    async def request_new_credential(self) -> None:
        await self._send_command("refresh_qr", {})

    async def close(self) -> None:
        self._closing = True
        if self._reader_task is not None and self._reader_task is not asyncio.current_task():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._reader_task = None

        for task in list(self._inbound_tasks):
            task.cancel()
        self._inbound_tasks.clear()

        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()
        self._fail_pending("bridge fechada")

    # ──────────────────────────────────────────────────────────────
    # Leitura
    # ──────────────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._fail_pending("conexão com a bridge encerrada")
        if not self._closing and self._listener is not None:
            self._ws = None
            await self._listener.on_disconnected(BRIDGE_CLOSED_REASON)

    async def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("bridge_invalid_json")
            return
        if not isinstance(data, dict):
            logger.warning("bridge_invalid_frame")
            return

        frame_type = data.get("type")
        payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}

        if frame_type == "response":
            self._resolve_pending(str(data.get("requestId", "")), payload)
            return

        listener = self._listener
        if listener is None:
            return

        if frame_type == "message":
            task = asyncio.create_task(listener.on_message(payload))
            self._inbound_tasks.add(task)
            task.add_done_callback(self._inbound_tasks.discard)
        elif frame_type == "qr":
            await listener.on_credential(str(payload.get("qr", "")))
        elif frame_type == "authenticated":
            await listener.on_authenticated()
        elif frame_type == "auth_failure":
            await listener.on_auth_failure(str(payload.get("reason", "")))
        elif frame_type == "ready":
            await listener.on_ready()
        elif frame_type == "disconnected":
            await listener.on_disconnected(str(payload.get("reason", "")))
        else:
            logger.debug("bridge_frame_ignored", extra={"frame_type": frame_type})

    # ──────────────────────────────────────────────────────────────
    # Comandos
    # ──────────────────────────────────────────────────────────────

    async def _send_command(self, command_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self._ws is None:
            raise BridgeConnectionError("bridge não conectada")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        envelope = {
            "version": PROTOCOL_VERSION,
            "type": command_type,
            "token": self._settings.bridge_token,
            "requestId": request_id,
            "payload": payload,
        }
        timeout = self._settings.request_timeout_ms / 1000
        try:
            async with self._send_lock:
                await self._ws.send(json.dumps(envelope))
            return await asyncio.wait_for(future, timeout=timeout)
        except websockets.ConnectionClosed as exc:
            raise BridgeConnectionError("bridge fechou durante o comando") from exc
        finally:
            self._pending.pop(request_id, None)

    def _resolve_pending(self, request_id: str, payload: dict[str, Any]) -> None:
        future = self._pending.get(request_id)
        if future is None or future.done():
            return
        if payload.get("ok"):
            result = payload.get("result")
            future.set_result(result if isinstance(result, dict) else {})
            return
        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        future.set_exception(
            BridgeCommandError(
                str(error.get("code") or "ERR_INTERNAL"),
                str(error.get("message") or "comando recusado pela bridge"),
            )
        )

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BridgeConnectionError(reason))
        self._pending.clear()
