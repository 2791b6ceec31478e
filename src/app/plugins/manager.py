"""Gerenciador de plugins.

Registro anexa o middleware do plugin ao fim do pipeline (envolvido por
um guarda que respeita ``enabled``), registra seus comandos e inicializa
o plugin se estiver habilitado. Falhas de ``initialize``/``destroy`` são
isoladas: viram log de PluginLifecycleError e nunca sobem ao chamador.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from utils.errors import NotFoundError, PluginLifecycleError, ValidationError

if TYPE_CHECKING:
    from app.commands.registry import CommandRegistry
    from app.pipeline.pipeline import EventPipeline, Middleware, PipelineContext, Proceed
    from app.plugins.base import Plugin

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PluginEntry:
    plugin: Plugin
    middleware: Middleware | None = None
    command_names: list[str] = field(default_factory=list)
    initialized: bool = False


class PluginManager:
    """Registro e ciclo de vida de plugins.

    Args:
        pipeline: Pipeline onde os middlewares dos plugins são anexados
        registry: Registro onde os comandos dos plugins são incluídos
    """

    def __init__(self, pipeline: EventPipeline, registry: CommandRegistry) -> None:
        self._pipeline = pipeline
        self._registry = registry
        self._plugins: dict[str, _PluginEntry] = {}

    async def register(self, plugin: Plugin) -> None:
        """Registra e (se habilitado) inicializa o plugin.

        Raises:
            ValidationError: Plugin sem nome ou já registrado.
        """
        name = (getattr(plugin, "name", "") or "").strip()
        if not name:
            raise ValidationError("plugin sem nome")
        if name in self._plugins:
            raise ValidationError(f"plugin já registrado: {name}")

        commands = plugin.commands()
        entry = _PluginEntry(plugin=plugin)
        if plugin.has_middleware:
            entry.middleware = self._guard(plugin)
            self._pipeline.use(entry.middleware, name=f"plugin:{name}")

        for command in commands:
            try:
                registered = self._registry.register(command)
            except ValidationError as exc:
                logger.warning(
                    "plugin_command_rejected",
                    extra={"plugin": name, "command": command.name, "error": str(exc)},
                )
                continue
            entry.command_names.append(registered.name)

        self._plugins[name] = entry
        logger.info(
            "plugin_registered",
            extra={"plugin": name, "version": plugin.version, "commands": entry.command_names},
        )

        if plugin.enabled:
            await self._initialize(entry)

    async def unregister(self, name: str) -> None:
        """Destrói e remove o plugin, seu middleware e seus comandos.

        Raises:
            NotFoundError: Plugin inexistente.
        """
        entry = self._get_entry(name)
        if entry.initialized:
            await self._destroy(entry)
        if entry.middleware is not None:
            self._pipeline.remove(entry.middleware)
        for command_name in entry.command_names:
            try:
                self._registry.unregister(command_name)
            except NotFoundError:
                logger.debug("plugin_command_already_removed", extra={"command": command_name})
        del self._plugins[name]
        logger.info("plugin_unregistered", extra={"plugin": name})

    async def enable(self, name: str) -> None:
        entry = self._get_entry(name)
        if entry.plugin.enabled:
            return
        entry.plugin.enabled = True
        await self._initialize(entry)
        if entry.plugin.enabled:
            logger.info("plugin_enabled", extra={"plugin": name})

    async def disable(self, name: str) -> None:
        entry = self._get_entry(name)
        if not entry.plugin.enabled:
            return
        entry.plugin.enabled = False
        if entry.initialized:
            await self._destroy(entry)
        logger.info("plugin_disabled", extra={"plugin": name})

    async def cleanup(self) -> None:
        """Destrói todos os plugins inicializados (shutdown)."""
        for entry in list(self._plugins.values()):
            if entry.initialized:
                await self._destroy(entry)

    def get_plugin(self, name: str) -> Plugin | None:
        entry = self._plugins.get(name)
        return entry.plugin if entry else None

    def get_plugins(self) -> list[Plugin]:
        return [entry.plugin for entry in self._plugins.values()]

    def stats(self) -> dict[str, Any]:
        plugins = self.get_plugins()
        enabled = [p for p in plugins if p.enabled]
        return {
            "total": len(plugins),
            "enabled": len(enabled),
            "disabled": len(plugins) - len(enabled),
            "names": [p.name for p in plugins],
        }

    # ──────────────────────────────────────────────────────────────
    # Interno
    # ──────────────────────────────────────────────────────────────

    def _get_entry(self, name: str) -> _PluginEntry:
        entry = self._plugins.get(name)
        if entry is None:
            raise NotFoundError(f"plugin não encontrado: {name}")
        return entry

    @staticmethod
    def _guard(plugin: Plugin) -> Middleware:
        async def plugin_middleware(ctx: PipelineContext, proceed: Proceed) -> None:
            if not plugin.enabled:
                await proceed()
                return
            await plugin.handle(ctx, proceed)

        plugin_middleware.__name__ = f"plugin_{plugin.name}"
        return plugin_middleware

    async def _initialize(self, entry: _PluginEntry) -> None:
        plugin = entry.plugin
        try:
            await plugin.initialize()
        except Exception as exc:
            error = PluginLifecycleError(plugin.name, "initialize", exc)
            logger.error("plugin_initialize_failed", extra={"plugin": plugin.name, "error": str(error)})
            plugin.enabled = False
            return
        entry.initialized = True
        logger.info("plugin_initialized", extra={"plugin": plugin.name})

    async def _destroy(self, entry: _PluginEntry) -> None:
        plugin = entry.plugin
        entry.initialized = False
        try:
            await plugin.destroy()
        except Exception as exc:
            error = PluginLifecycleError(plugin.name, "destroy", exc)
            logger.error("plugin_destroy_failed", extra={"plugin": plugin.name, "error": str(error)})
            return
        logger.info("plugin_destroyed", extra={"plugin": plugin.name})
