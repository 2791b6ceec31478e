"""Carregamento de plugins a partir de caminhos ``modulo:fabrica``."""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from app.plugins.base import Plugin
from utils.errors import PluginLifecycleError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

DEFAULT_FACTORY = "get_plugin"


def load_plugin(spec: str) -> Plugin:
    """Importa o módulo e chama a fábrica (default ``get_plugin``).

    Raises:
        ValidationError: Caminho inválido ou fábrica que não devolve Plugin.
        ImportError: Módulo inexistente.
        Exception: Qualquer erro do módulo ao ser importado ou da fábrica.
    """
    module_path, _, factory_name = spec.strip().partition(":")
    if not module_path:
        raise ValidationError(f"caminho de plugin inválido: {spec!r}")

    module = importlib.import_module(module_path)
    factory = getattr(module, factory_name or DEFAULT_FACTORY, None)
    if factory is None or not callable(factory):
        raise ValidationError(f"fábrica de plugin não encontrada: {spec!r}")

    plugin = factory()
    if not isinstance(plugin, Plugin):
        raise ValidationError(f"fábrica {spec!r} não retornou um Plugin")
    return plugin


def load_plugins(specs: Iterable[str]) -> list[Plugin]:
    """Carrega cada plugin; falhas são logadas e o plugin é ignorado.

    Um plugin quebrado nunca impede o carregamento dos seguintes.
    """
    plugins: list[Plugin] = []
    for spec in specs:
        try:
            plugins.append(load_plugin(spec))
        except Exception as exc:
            error = PluginLifecycleError(spec, "load", exc)
            logger.error(
                "plugin_load_failed",
                extra={"plugin_spec": spec, "error_type": type(exc).__name__, "error": str(error)},
            )
    return plugins
