"""Contrato de plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.commands.models import Command
    from app.pipeline.pipeline import PipelineContext, Proceed


class Plugin(ABC):
    """Extensão do bot: middleware e/ou comandos com ciclo de vida próprio.

    Subclasses definem ``name`` (obrigatório) e podem sobrescrever
    ``handle`` (middleware) e ``commands``. ``enabled`` é controlado pelo
    PluginManager depois do registro.
    """

    name: str = ""
    version: str = "0.0.0"
    description: str = ""
    author: str = ""

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled

    @abstractmethod
    async def initialize(self) -> None:
        """Aloca recursos do plugin."""

    @abstractmethod
    async def destroy(self) -> None:
        """Libera recursos do plugin."""

    @property
    def has_middleware(self) -> bool:
        return type(self).handle is not Plugin.handle

    async def handle(self, ctx: PipelineContext, proceed: Proceed) -> None:
        """Middleware do plugin (default: só repassa)."""
        await proceed()

    def commands(self) -> list[Command]:
        return []

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "enabled": self.enabled,
        }
