"""Testes do WhatsAppBridgeClient com WebSocket fake."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.infra.whatsapp import bridge_client
from app.infra.whatsapp.bridge_client import (
    BRIDGE_CLOSED_REASON,
    PROTOCOL_VERSION,
    BridgeCommandError,
    WhatsAppBridgeClient,
)
from config.settings import WhatsAppSettings
from utils.errors import BridgeConnectionError


def _ok(message: dict[str, Any], result: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "version": 1,
        "type": "response",
        "requestId": message["requestId"],
        "payload": {"ok": True, "result": result or {}},
    }


class FakeWebSocket:
    """Socket em memória: cada comando enviado pode gerar uma resposta."""

    def __init__(self, responder=_ok) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.responder = responder
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, raw: str) -> None:
        message = json.loads(raw)
        self.sent.append(message)
        if self.responder is not None:
            reply = self.responder(message)
            if reply is not None:
                await self._queue.put(json.dumps(reply))

    async def push(self, frame: dict[str, Any] | str) -> None:
        await self._queue.put(frame if isinstance(frame, str) else json.dumps(frame))

    async def drop(self) -> None:
        await self._queue.put(None)

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.closed = True
        await self._queue.put(None)


def _settings(**overrides: Any) -> WhatsAppSettings:
    values = {"bridge_url": "ws://bridge.test", "bridge_token": "tok", "request_timeout_ms": 200}
    values.update(overrides)
    return WhatsAppSettings(**values)


async def _started(monkeypatch, ws: FakeWebSocket, **overrides: Any) -> tuple[WhatsAppBridgeClient, AsyncMock]:
    monkeypatch.setattr(bridge_client.websockets, "connect", AsyncMock(return_value=ws))
    client = WhatsAppBridgeClient(_settings(**overrides))
    listener = AsyncMock()
    await client.start(listener)
    return client, listener


async def _eventually(predicate, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class TestCommands:
    @pytest.mark.asyncio
    async def test_start_sends_versioned_start_command(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, _ = await _started(monkeypatch, ws, session_name="minha-sessao")

        (start,) = ws.sent
        assert start["version"] == PROTOCOL_VERSION
        assert start["type"] == "start"
        assert start["token"] == "tok"
        assert start["payload"] == {"session": "minha-sessao"}
        assert client.is_open
        await client.close()

    @pytest.mark.asyncio
    async def test_send_text_returns_receipt(self, monkeypatch) -> None:
        ws = FakeWebSocket(responder=lambda m: _ok(m, {"messageId": "wa-1"}))
        client, _ = await _started(monkeypatch, ws)

        receipt = await client.send_text("5511@c.us", "olá")

        assert receipt.message_id == "wa-1"
        assert receipt.conversation_id == "5511@c.us"
        assert ws.sent[-1]["payload"] == {"to": "5511@c.us", "text": "olá"}
        await client.close()

    @pytest.mark.asyncio
    async def test_get_state_and_refresh(self, monkeypatch) -> None:
        ws = FakeWebSocket(responder=lambda m: _ok(m, {"state": "CONNECTED"}))
        client, _ = await _started(monkeypatch, ws)

        assert await client.get_state() == "CONNECTED"
        await client.request_new_credential()

        assert [m["type"] for m in ws.sent] == ["start", "get_state", "refresh_qr"]
        await client.close()

    @pytest.mark.asyncio
    async def test_error_response_raises(self, monkeypatch) -> None:
        def responder(message: dict[str, Any]) -> dict[str, Any]:
            if message["type"] == "start":
                return _ok(message)
            return {
                "type": "response",
                "requestId": message["requestId"],
                "payload": {"ok": False, "error": {"code": "ERR_NOT_READY", "message": "sessão fechada"}},
            }

        client, _ = await _started(monkeypatch, FakeWebSocket(responder=responder))

        with pytest.raises(BridgeCommandError) as exc_info:
            await client.send_text("5511@c.us", "x")
        assert exc_info.value.code == "ERR_NOT_READY"
        await client.close()

    @pytest.mark.asyncio
    async def test_command_timeout(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, _ = await _started(monkeypatch, ws, request_timeout_ms=20)
        ws.responder = None

        with pytest.raises(TimeoutError):
            await client.get_state()
        await client.close()

    @pytest.mark.asyncio
    async def test_command_without_connection(self) -> None:
        client = WhatsAppBridgeClient(_settings())
        with pytest.raises(BridgeConnectionError):
            await client.get_state()

    @pytest.mark.asyncio
    async def test_connect_failure(self, monkeypatch) -> None:
        monkeypatch.setattr(
            bridge_client.websockets, "connect", AsyncMock(side_effect=OSError("recusado"))
        )
        client = WhatsAppBridgeClient(_settings())

        with pytest.raises(BridgeConnectionError):
            await client.start(AsyncMock())


class TestEvents:
    @pytest.mark.asyncio
    async def test_lifecycle_frames_forwarded(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, listener = await _started(monkeypatch, ws)

        await ws.push({"type": "qr", "payload": {"qr": "2@abc"}})
        await ws.push({"type": "authenticated", "payload": {}})
        await ws.push({"type": "auth_failure", "payload": {"reason": "expired"}})
        await ws.push({"type": "ready"})
        await ws.push({"type": "disconnected", "payload": {"reason": "CONFLICT"}})
        await _eventually(lambda: listener.on_disconnected.await_count == 1)

        listener.on_credential.assert_awaited_once_with("2@abc")
        listener.on_authenticated.assert_awaited_once()
        listener.on_auth_failure.assert_awaited_once_with("expired")
        listener.on_ready.assert_awaited_once()
        listener.on_disconnected.assert_awaited_once_with("CONFLICT")
        await client.close()

    @pytest.mark.asyncio
    async def test_message_frame_dispatched(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, listener = await _started(monkeypatch, ws)
        payload = {"id": "m1", "from": "5511@c.us", "body": "oi"}

        await ws.push({"type": "message", "payload": payload})
        await _eventually(lambda: listener.on_message.await_count == 1)

        listener.on_message.assert_awaited_once_with(payload)
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_frames_ignored(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, listener = await _started(monkeypatch, ws)

        await ws.push("não é json")
        await ws.push("[1, 2]")
        await ws.push({"type": "desconhecido"})
        await ws.push({"type": "ready"})
        await _eventually(lambda: listener.on_ready.await_count == 1)

        listener.on_message.assert_not_awaited()
        await client.close()

    @pytest.mark.asyncio
    async def test_socket_drop_reports_disconnect(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, listener = await _started(monkeypatch, ws)

        await ws.drop()
        await _eventually(lambda: listener.on_disconnected.await_count == 1)

        listener.on_disconnected.assert_awaited_once_with(BRIDGE_CLOSED_REASON)
        assert not client.is_open

    @pytest.mark.asyncio
    async def test_close_is_silent(self, monkeypatch) -> None:
        ws = FakeWebSocket()
        client, listener = await _started(monkeypatch, ws)

        await client.close()
        await asyncio.sleep(0.01)

        assert ws.closed
        listener.on_disconnected.assert_not_awaited()
