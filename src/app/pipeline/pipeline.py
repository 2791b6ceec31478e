"""Pipeline ordenado de middlewares.

Cada middleware recebe o contexto e uma continuação ``proceed``; pode
trabalhar antes, depois, ou não chamar ``proceed`` (interrompe a cadeia).
A execução usa um snapshot da lista: registrar ou remover middlewares
durante um evento afeta apenas os eventos seguintes.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.commands.models import ReplyFn
    from app.domain.messages import InboundEvent

logger = logging.getLogger(__name__)

Proceed = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class PipelineContext:
    """Estado de um evento atravessando o pipeline.

    Attributes:
        event: Mensagem recebida (imutável)
        reply: Responde na conversa de origem
        source: Origem do evento ("whatsapp" | "webhook")
        handled: Algum estágio tratou o evento como comando
        state: Espaço livre para middlewares trocarem dados
    """

    event: InboundEvent
    reply: ReplyFn
    source: str = "whatsapp"
    handled: bool = False
    state: dict[str, Any] = field(default_factory=dict)


Middleware = Callable[[PipelineContext, Proceed], Awaitable[None]]


class EventPipeline:
    """Cadeia de middlewares em ordem de registro."""

    def __init__(self) -> None:
        self._middlewares: list[tuple[str, Middleware]] = []

    def use(self, middleware: Middleware, name: str | None = None) -> None:
        """Acrescenta middleware ao fim da cadeia."""
        label = name or getattr(middleware, "__name__", "middleware")
        self._middlewares.append((label, middleware))
        logger.debug("pipeline_middleware_added", extra={"middleware": label})

    def remove(self, middleware: Middleware) -> bool:
        """Remove a primeira ocorrência; True se encontrou."""
        for index, (_, registered) in enumerate(self._middlewares):
            if registered is middleware:
                del self._middlewares[index]
                return True
        return False

    def names(self) -> list[str]:
        return [name for name, _ in self._middlewares]

    def __len__(self) -> int:
        return len(self._middlewares)

    async def execute(self, context: PipelineContext) -> None:
        chain = list(self._middlewares)

        async def run(index: int) -> None:
            if index >= len(chain):
                return
            _, middleware = chain[index]
            called = False

            async def proceed() -> None:
                nonlocal called
                if called:
                    raise RuntimeError("proceed chamado mais de uma vez")
                called = True
                await run(index + 1)

            await middleware(context, proceed)

        await run(0)
