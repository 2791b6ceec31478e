"""Comandos embutidos: help, ping, status e stats."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from app.commands.models import Command
from app.domain.messages import now_ms

if TYPE_CHECKING:
    from app.commands.models import CommandContext
    from app.commands.registry import CommandRegistry

StatusProvider = Callable[[], dict[str, Any]]
StatsProvider = Callable[[], Awaitable[dict[str, Any]]]


def _format_uptime(seconds: float) -> str:
    total = int(seconds)
    days, rest = divmod(total, 86_400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"


class BuiltinCommands:
    """Handlers dos comandos embutidos.

    Dependem apenas de capacidades estreitas: o registro (para o help),
    um provedor de status síncrono e um provedor de estatísticas.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        status_provider: StatusProvider,
        stats_provider: StatsProvider,
    ) -> None:
        self._registry = registry
        self._status_provider = status_provider
        self._stats_provider = stats_provider

    def commands(self) -> list[Command]:
        return [
            Command(
                name="help",
                handler=self.help,
                description="Lista os comandos disponíveis",
                usage="help [comando]",
                aliases=("h", "commands", "cmds"),
                category="general",
                cooldown_ms=5000,
            ),
            Command(
                name="ping",
                handler=self.ping,
                description="Verifica se o bot está respondendo",
                usage="ping",
                aliases=("p",),
                category="general",
                cooldown_ms=3000,
            ),
            Command(
                name="status",
                handler=self.status,
                description="Mostra o estado da sessão e do bot",
                usage="status",
                aliases=("s",),
                category="info",
                cooldown_ms=10_000,
            ),
            Command(
                name="stats",
                handler=self.stats,
                description="Mostra estatísticas de uso",
                usage="stats",
                aliases=("statistics",),
                category="info",
                cooldown_ms=15_000,
            ),
        ]

    async def help(self, ctx: CommandContext) -> None:
        prefix = self._registry.prefix
        if ctx.args:
            command = self._registry.get_command(ctx.args[0])
            if command is None:
                await ctx.reply(f"❓ Comando desconhecido: {ctx.args[0]}")
                return
            lines = [f"*{prefix}{command.name}*", command.description]
            if command.usage:
                lines.append(f"Uso: {prefix}{command.usage}")
            if command.aliases:
                lines.append("Atalhos: " + ", ".join(f"{prefix}{a}" for a in command.aliases))
            if command.cooldown_ms:
                lines.append(f"Intervalo: {command.cooldown_ms // 1000}s")
            await ctx.reply("\n".join(line for line in lines if line))
            return

        sections = ["🤖 *Comandos disponíveis*"]
        for category in self._registry.get_categories():
            sections.append(f"\n*{category.upper()}*")
            for command in self._registry.get_commands_by_category(category):
                sections.append(f"{prefix}{command.name} - {command.description}")
        sections.append(f"\nUse {prefix}help <comando> para detalhes.")
        await ctx.reply("\n".join(sections))

    async def ping(self, ctx: CommandContext) -> None:
        latency_ms = max(now_ms() - ctx.event.timestamp_ms, 0)
        await ctx.reply(f"🏓 Pong! Latência: {latency_ms}ms")

    async def status(self, ctx: CommandContext) -> None:
        snapshot = self._status_provider()
        session = snapshot.get("session", {})
        lines = [
            "📊 *Status do bot*",
            f"Sessão: {session.get('state', 'UNKNOWN')}",
            f"Tempo ativo: {_format_uptime(snapshot.get('uptime_seconds', 0))}",
            f"Reconexões: {session.get('reconnect_attempts', 0)}",
            f"Comandos: {snapshot.get('commands', {}).get('total_commands', 0)}",
            f"Plugins ativos: {snapshot.get('plugins', {}).get('enabled', 0)}",
        ]
        await ctx.reply("\n".join(lines))

    async def stats(self, ctx: CommandContext) -> None:
        data = await self._stats_provider()
        usage: dict[str, int] = data.get("usage", {})
        top = sorted(usage.items(), key=lambda item: item[1], reverse=True)[:5]
        lines = [
            "📈 *Estatísticas*",
            f"Mensagens: {data.get('total_messages', 0)}",
            f"Comandos executados: {data.get('total_commands', 0)}",
            f"Conversas: {data.get('unique_conversations', 0)}",
        ]
        if top:
            lines.append("\n*Mais usados*")
            lines.extend(f"{self._registry.prefix}{name}: {count}" for name, count in top)
        await ctx.reply("\n".join(lines))
