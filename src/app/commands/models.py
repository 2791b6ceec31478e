"""Modelos de comando: definição, contexto de execução e handler."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.domain.messages import InboundEvent

ReplyFn = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class CommandContext:
    """O que um handler recebe: o evento, os argumentos e como responder.

    Attributes:
        event: Mensagem que originou o comando
        args: Argumentos separados por espaço (sem o nome do comando)
        reply: Envia texto para a conversa de origem
        command_name: Nome canônico resolvido
    """

    event: InboundEvent
    args: tuple[str, ...]
    reply: ReplyFn
    command_name: str = ""

    @property
    def conversation_id(self) -> str:
        return self.event.conversation_id

    @property
    def raw_args(self) -> str:
        return " ".join(self.args)


CommandHandler = Callable[[CommandContext], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Command:
    """Definição de um comando.

    Attributes:
        name: Nome único (comparado sem diferenciar maiúsculas)
        handler: Corrotina executada com o CommandContext
        description: Texto curto para o ``help``
        usage: Exemplo de uso (ex: "!remind <min> <texto>")
        aliases: Nomes alternativos
        category: Agrupamento no ``help``
        cooldown_ms: Intervalo mínimo por conversa (0 desativa)
    """

    name: str
    handler: CommandHandler | None
    description: str = ""
    usage: str = ""
    aliases: tuple[str, ...] = field(default_factory=tuple)
    category: str = "general"
    cooldown_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "usage": self.usage,
            "aliases": list(self.aliases),
            "category": self.category,
            "cooldown_ms": self.cooldown_ms,
        }
