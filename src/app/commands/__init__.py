"""Comandos: definição, registro/despacho e comandos embutidos."""

from app.commands.builtin import BuiltinCommands
from app.commands.models import Command, CommandContext, CommandHandler, ReplyFn
from app.commands.registry import CommandRegistry, validate_command

__all__ = [
    "BuiltinCommands",
    "Command",
    "CommandContext",
    "CommandHandler",
    "CommandRegistry",
    "ReplyFn",
    "validate_command",
]
