"""Modelos de mensagem do bot.

InboundEvent é imutável e passa por referência por todo o pipeline.
ConversationRecord é a forma persistida de cada mensagem recebida.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from app.constants.whatsapp import (
    BROADCAST_SUFFIX,
    GROUP_SUFFIX,
    USER_SUFFIX,
    ConversationType,
)

_CONVERSATION_ID_RE = re.compile(r"^\d+@c\.us$|^[\d-]+@g\.us$|^\w+@broadcast$")
_NON_DIGITS_RE = re.compile(r"\D")


def now_ms() -> int:
    """Epoch atual em milissegundos."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class InboundEvent:
    """Mensagem recebida do WhatsApp.

    Attributes:
        message_id: ID da mensagem na rede
        conversation_id: Chat de origem (``<num>@c.us`` ou ``<id>@g.us``)
        sender_id: Autor (em grupos difere de conversation_id)
        body: Texto da mensagem
        has_media: Mensagem com anexo
        from_me: Enviada pela própria conta do bot
        timestamp_ms: Epoch em ms
    """

    message_id: str
    conversation_id: str
    sender_id: str
    body: str = ""
    has_media: bool = False
    from_me: bool = False
    timestamp_ms: int = field(default_factory=now_ms)

    @property
    def is_group(self) -> bool:
        return self.conversation_id.endswith(GROUP_SUFFIX)

    @classmethod
    def from_bridge(cls, data: dict[str, Any]) -> InboundEvent:
        """Constrói a partir do payload ``message`` da bridge."""
        conversation_id = str(data.get("from") or data.get("chatId") or "")
        timestamp = data.get("timestamp")
        # Bridge envia epoch em segundos
        timestamp_ms = int(timestamp) * 1000 if timestamp else now_ms()
        return cls(
            message_id=str(data.get("id") or uuid.uuid4().hex),
            conversation_id=conversation_id,
            sender_id=str(data.get("author") or data.get("sender") or conversation_id),
            body=str(data.get("body") or ""),
            has_media=bool(data.get("hasMedia", False)),
            from_me=bool(data.get("fromMe", False)),
            timestamp_ms=timestamp_ms,
        )

    def to_log_dict(self) -> dict[str, Any]:
        """Campos seguros para log (sem corpo da mensagem)."""
        return {
            "message_id": self.message_id,
            "conversation_id": self.conversation_id,
            "is_group": self.is_group,
            "has_media": self.has_media,
            "from_me": self.from_me,
        }


@dataclass(frozen=True, slots=True)
class DeliveryReceipt:
    """Confirmação de envio devolvida pela bridge."""

    message_id: str
    conversation_id: str
    timestamp_ms: int = field(default_factory=now_ms)


@dataclass(frozen=True, slots=True)
class ConversationRecord:
    """Registro persistido de uma mensagem recebida."""

    record_id: str
    conversation_id: str
    sender_id: str
    body: str
    timestamp_ms: int
    from_me: bool = False
    is_command: bool = False
    command_name: str | None = None

    @classmethod
    def from_event(cls, event: InboundEvent, command_prefix: str = "!") -> ConversationRecord:
        is_command = event.body.startswith(command_prefix)
        command_name = None
        if is_command:
            parts = event.body[len(command_prefix):].split(maxsplit=1)
            command_name = parts[0].lower() if parts else None
        return cls(
            record_id=event.message_id,
            conversation_id=event.conversation_id,
            sender_id=event.sender_id,
            body=event.body,
            timestamp_ms=event.timestamp_ms,
            from_me=event.from_me,
            is_command=is_command,
            command_name=command_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationRecord:
        return cls(
            record_id=str(data["record_id"]),
            conversation_id=str(data["conversation_id"]),
            sender_id=str(data.get("sender_id", "")),
            body=str(data.get("body", "")),
            timestamp_ms=int(data["timestamp_ms"]),
            from_me=bool(data.get("from_me", False)),
            is_command=bool(data.get("is_command", False)),
            command_name=data.get("command_name"),
        )


@dataclass(frozen=True, slots=True)
class ConversationStats:
    """Agregados do histórico para /status e comando ``stats``."""

    total_messages: int = 0
    total_commands: int = 0
    unique_conversations: int = 0


def format_phone_number(phone: str) -> str:
    """Normaliza telefone para conversation id de usuário.

    Remove tudo que não é dígito e acrescenta ``@c.us`` quando ausente.

    Raises:
        ValueError: Se não restar nenhum dígito.
    """
    if phone.endswith((USER_SUFFIX, GROUP_SUFFIX)):
        return phone
    digits = _NON_DIGITS_RE.sub("", phone)
    if not digits:
        raise ValueError("telefone sem dígitos")
    return f"{digits}{USER_SUFFIX}"


def is_valid_conversation_id(conversation_id: str) -> bool:
    """Valida o formato ``<digits>@c.us``, ``<digits>@g.us`` ou broadcast."""
    return bool(_CONVERSATION_ID_RE.match(conversation_id or ""))


def conversation_type(conversation_id: str) -> ConversationType:
    """Classifica o conversation id pelo sufixo."""
    if conversation_id.endswith(GROUP_SUFFIX):
        return ConversationType.GROUP
    if conversation_id.endswith(USER_SUFFIX):
        return ConversationType.USER
    if conversation_id.endswith(BROADCAST_SUFFIX):
        return ConversationType.BROADCAST
    return ConversationType.UNKNOWN
