"""Sistema de plugins."""

from app.plugins.base import Plugin
from app.plugins.greeting import GreetingPlugin, is_greeting
from app.plugins.loader import DEFAULT_FACTORY, load_plugin, load_plugins
from app.plugins.manager import PluginManager

__all__ = [
    "DEFAULT_FACTORY",
    "GreetingPlugin",
    "Plugin",
    "PluginManager",
    "is_greeting",
    "load_plugin",
    "load_plugins",
]
