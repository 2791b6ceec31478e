"""Plugin de exemplo: responde a saudações e oferece o comando ``hello``."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from app.commands.models import Command
from app.plugins.base import Plugin

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from app.commands.models import CommandContext
    from app.pipeline.pipeline import PipelineContext, Proceed

logger = logging.getLogger(__name__)

GREETING_KEYWORDS = ("oi", "olá", "ola", "bom dia", "boa tarde", "boa noite", "hello", "hi")

GREETING_REPLIES = (
    "Olá! 👋 Como posso ajudar?",
    "Oi! 😊 Em que posso ser útil?",
    "Olá! Digite !help para ver os comandos.",
)


def is_greeting(text: str) -> bool:
    words = text.lower().strip()
    if not words:
        return False
    return any(words == keyword or words.startswith(f"{keyword} ") for keyword in GREETING_KEYWORDS)


class GreetingPlugin(Plugin):
    name = "greeting"
    version = "1.0.0"
    description = "Responde automaticamente a saudações"
    author = "zapbot"

    def __init__(
        self,
        *,
        enabled: bool = True,
        choice: Callable[[Sequence[str]], str] = random.choice,
    ) -> None:
        super().__init__(enabled=enabled)
        self._choice = choice
        self.greeted = 0

    async def initialize(self) -> None:
        self.greeted = 0
        logger.info("greeting_plugin_ready")

    async def destroy(self) -> None:
        logger.info("greeting_plugin_stopped", extra={"greeted": self.greeted})

    async def handle(self, ctx: PipelineContext, proceed: Proceed) -> None:
        event = ctx.event
        if not event.from_me and not event.is_group and is_greeting(event.body):
            await ctx.reply(self._choice(GREETING_REPLIES))
            self.greeted += 1
        await proceed()

    def commands(self) -> list[Command]:
        return [
            Command(
                name="hello",
                handler=self._hello,
                description="Cumprimenta quem chamou",
                usage="hello [nome]",
                aliases=("oi",),
                category="fun",
                cooldown_ms=5000,
            )
        ]

    async def _hello(self, ctx: CommandContext) -> None:
        target = " ".join(ctx.args) if ctx.args else "você"
        await ctx.reply(f"👋 Olá, {target}!")


def get_plugin() -> GreetingPlugin:
    return GreetingPlugin()
