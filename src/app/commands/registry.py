"""Registro e despacho de comandos.

Mapas mantidos (todos protegidos pelo mesmo lock, nunca segurado
durante um ``await``):
    - nome → Command
    - alias → nome
    - (nome, conversa) → último uso (cooldown)

A checagem de cooldown e a reserva do novo carimbo acontecem juntas sob
o lock; se o handler falhar, a reserva é desfeita com compare-and-set.
Duas mensagens simultâneas da mesma conversa nunca passam ambas.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from app.commands.models import Command, CommandContext
from app.domain.messages import now_ms
from app.observability import record_counter, record_latency
from utils.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from app.commands.models import ReplyFn
    from app.domain.messages import InboundEvent
    from app.protocols.command_stats_store import CommandStatsStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "!"


def validate_command(command: Command) -> list[str]:
    """Valida uma definição de comando.

    Returns:
        Lista de erros (vazia = OK).
    """
    errors: list[str] = []
    name = command.name if isinstance(command.name, str) else ""
    if not name.strip():
        errors.append("nome do comando não pode ser vazio")
    elif any(ch.isspace() for ch in name.strip()):
        errors.append(f"nome do comando não pode conter espaços: {name!r}")

    if command.handler is None or not callable(command.handler):
        errors.append(f"comando {name!r} sem handler")

    cooldown = command.cooldown_ms
    if isinstance(cooldown, bool) or not isinstance(cooldown, int) or cooldown < 0:
        errors.append(f"cooldown do comando {name!r} deve ser inteiro >= 0")

    for alias in command.aliases:
        if not isinstance(alias, str) or not alias.strip() or any(c.isspace() for c in alias.strip()):
            errors.append(f"alias inválido em {name!r}: {alias!r}")
    return errors


class CommandRegistry:
    """Registro de comandos com aliases e cooldown por conversa.

    Args:
        prefix: Caractere que inicia um comando
        stats_store: Contadores persistentes de uso (opcional)
        clock: Epoch em ms (injetável para testes)
    """

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        *,
        stats_store: CommandStatsStoreProtocol | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._prefix = prefix
        self._stats_store = stats_store
        self._clock = clock
        self._lock = threading.Lock()
        self._commands: dict[str, Command] = {}
        self._aliases: dict[str, str] = {}
        self._cooldowns: dict[tuple[str, str], int] = {}
        self._usage: dict[str, int] = defaultdict(int)

    @property
    def prefix(self) -> str:
        return self._prefix

    # ──────────────────────────────────────────────────────────────
    # Registro
    # ──────────────────────────────────────────────────────────────

    def register(self, command: Command) -> Command:
        """Registra um comando.

        Aliases já tomados (por outro alias ou nome) são ignorados com
        warning: o primeiro registro vence.

        Returns:
            O comando normalizado (nome e aliases em minúsculas).

        Raises:
            ValidationError: Definição inválida ou nome já usado.
        """
        errors = validate_command(command)
        if errors:
            raise ValidationError("; ".join(errors))

        name = command.name.strip().lower()
        with self._lock:
            if name in self._commands or name in self._aliases:
                raise ValidationError(f"comando já registrado: {name}")

            accepted: list[str] = []
            for raw_alias in command.aliases:
                alias = raw_alias.strip().lower()
                if alias == name or alias in accepted:
                    continue
                if alias in self._aliases or alias in self._commands:
                    logger.warning(
                        "command_alias_conflict",
                        extra={
                            "command": name,
                            "alias": alias,
                            "owner": self._aliases.get(alias, alias),
                        },
                    )
                    continue
                accepted.append(alias)

            normalized = replace(command, name=name, aliases=tuple(accepted))
            self._commands[name] = normalized
            for alias in accepted:
                self._aliases[alias] = name

        logger.info(
            "command_registered",
            extra={"command": name, "aliases": accepted, "cooldown_ms": command.cooldown_ms},
        )
        return normalized

    def unregister(self, name: str) -> None:
        """Remove comando, seus aliases e seus cooldowns.

        Raises:
            NotFoundError: Comando inexistente.
        """
        key = name.strip().lower()
        with self._lock:
            command = self._commands.pop(key, None)
            if command is None:
                raise NotFoundError(f"comando não encontrado: {name}")
            for alias in [a for a, target in self._aliases.items() if target == key]:
                del self._aliases[alias]
            for bucket in [b for b in self._cooldowns if b[0] == key]:
                del self._cooldowns[bucket]
        logger.info("command_unregistered", extra={"command": key})

    # ──────────────────────────────────────────────────────────────
    # Consulta
    # ──────────────────────────────────────────────────────────────

    def _resolve_locked(self, candidate: str) -> Command | None:
        command = self._commands.get(candidate)
        if command is None and candidate in self._aliases:
            command = self._commands.get(self._aliases[candidate])
        return command

    def get_command(self, name: str) -> Command | None:
        """Resolve por nome ou alias (sem diferenciar maiúsculas)."""
        with self._lock:
            return self._resolve_locked(name.strip().lower())

    def get_commands(self) -> list[Command]:
        with self._lock:
            return sorted(self._commands.values(), key=lambda c: c.name)

    def get_aliases(self) -> dict[str, str]:
        with self._lock:
            return dict(self._aliases)

    def get_categories(self) -> list[str]:
        with self._lock:
            return sorted({c.category for c in self._commands.values()})

    def get_commands_by_category(self, category: str) -> list[Command]:
        return [c for c in self.get_commands() if c.category == category]

    def usage(self) -> dict[str, int]:
        with self._lock:
            return dict(self._usage)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_commands": len(self._commands),
                "total_aliases": len(self._aliases),
                "categories": len({c.category for c in self._commands.values()}),
                "active_cooldowns": len(self._cooldowns),
                "total_executions": sum(self._usage.values()),
                "usage": dict(self._usage),
            }

    # ──────────────────────────────────────────────────────────────
    # Despacho
    # ──────────────────────────────────────────────────────────────

    def parse(self, body: str) -> tuple[str, tuple[str, ...]] | None:
        """Separa ``<prefix><comando> arg1 arg2`` em (comando, args).

        Returns:
            None se o texto não é um comando.
        """
        if not body.startswith(self._prefix):
            return None
        remainder = body[len(self._prefix):]
        if not remainder or remainder[0].isspace():
            return None
        candidate, *args = remainder.split()
        return candidate.lower(), tuple(args)

    async def dispatch(self, event: InboundEvent, reply: ReplyFn) -> bool:
        """Executa o comando contido no evento, se houver.

        Returns:
            True somente se um comando foi resolvido, passou no cooldown
            e executou sem erro.
        """
        parsed = self.parse(event.body)
        if parsed is None:
            return False
        candidate, args = parsed

        now = self._clock()
        with self._lock:
            command = self._resolve_locked(candidate)
            if command is None:
                reserved = None
            else:
                reserved = self._reserve_cooldown_locked(command, event.conversation_id, now)

        if command is None:
            logger.info("command_not_found", extra={"candidate": candidate})
            return False
        if reserved is False:
            logger.debug(
                "command_on_cooldown",
                extra={"command": command.name, "conversation_id": event.conversation_id},
            )
            return False

        context = CommandContext(event=event, args=args, reply=reply, command_name=command.name)
        started = time.perf_counter()
        try:
            await command.handler(context)  # type: ignore[misc]
        except Exception:
            logger.exception(
                "command_failed",
                extra={"command": command.name, "conversation_id": event.conversation_id},
            )
            self._rollback_cooldown(command, event.conversation_id, now)
            return False

        record_latency("commands", command.name, (time.perf_counter() - started) * 1000)
        await self._record_usage(command.name)
        return True

    async def invoke(self, name: str, context: CommandContext) -> None:
        """Executa um comando sem prefixo nem cooldown (webhook).

        Raises:
            NotFoundError: Comando inexistente.
            Exception: Erro do handler (propagado ao chamador).
        """
        command = self.get_command(name)
        if command is None:
            raise NotFoundError(f"comando não encontrado: {name}")
        await command.handler(replace(context, command_name=command.name))  # type: ignore[misc]
        await self._record_usage(command.name)

    def _reserve_cooldown_locked(self, command: Command, conversation_id: str, now: int) -> bool | None:
        """Checa e reserva o cooldown (chamar com o lock).

        Returns:
            None se o comando não tem cooldown, True se reservou,
            False se ainda em cooldown.
        """
        if command.cooldown_ms == 0:
            return None
        key = (command.name, conversation_id)
        last = self._cooldowns.get(key)
        if last is not None and now < last + command.cooldown_ms:
            return False
        self._cooldowns[key] = now
        return True

    def _rollback_cooldown(self, command: Command, conversation_id: str, stamped: int) -> None:
        if command.cooldown_ms == 0:
            return
        key = (command.name, conversation_id)
        with self._lock:
            if self._cooldowns.get(key) == stamped:
                del self._cooldowns[key]

    async def _record_usage(self, name: str) -> None:
        with self._lock:
            self._usage[name] += 1
        record_counter("commands", "executed", labels={"command": name})
        if self._stats_store is None:
            return
        try:
            await self._stats_store.increment(name)
        except Exception:
            logger.warning("command_stats_persist_failed", extra={"command": name}, exc_info=True)

    def prune_cooldowns(self) -> int:
        """Remove registros de cooldown já vencidos (ou de comandos removidos)."""
        now = self._clock()
        with self._lock:
            stale = []
            for key, last in self._cooldowns.items():
                command = self._commands.get(key[0])
                if command is None or now >= last + command.cooldown_ms:
                    stale.append(key)
            for key in stale:
                del self._cooldowns[key]
        if stale:
            logger.debug("command_cooldowns_pruned", extra={"removed": len(stale)})
        return len(stale)
