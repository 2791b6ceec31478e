"""Protocolos da conexão com a rede de chat.

O SessionManager depende destas interfaces, nunca da bridge concreta.
O cliente reporta o ciclo de vida através de um SessionListener.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from app.domain.messages import DeliveryReceipt


class SessionListener(Protocol):
    """Callbacks de ciclo de vida invocados pelo cliente."""

    async def on_credential(self, credential: str) -> None:
        """Novo QR code emitido."""
        ...

    async def on_authenticated(self) -> None:
        """QR lido; handshake em andamento."""
        ...

    async def on_auth_failure(self, reason: str) -> None:
        ...

    async def on_ready(self) -> None:
        """Sessão pronta para enviar e receber."""
        ...

    async def on_message(self, data: dict[str, Any]) -> None:
        """Mensagem recebida (payload bruto da bridge)."""
        ...

    async def on_disconnected(self, reason: str) -> None:
        ...


class ChatClientProtocol(Protocol):
    """Cliente da rede de chat (bridge WhatsApp Web)."""

    async def start(self, listener: SessionListener) -> None:
        """Conecta e inicia a sessão; eventos chegam via ``listener``.

        Raises:
            BridgeConnectionError: Falha ao iniciar.
        """
        ...

    async def get_state(self) -> str:
        """Estado reportado pela rede (``"CONNECTED"`` quando saudável)."""
        ...

    async def send_text(self, conversation_id: str, text: str) -> DeliveryReceipt:
        ...

    async def request_new_credential(self) -> None:
        """Pede um novo QR code (o resultado chega via ``on_credential``)."""
        ...

    async def close(self) -> None:
        ...
