"""Settings do bot: comandos, plugins e servidor HTTP."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache


def _parse_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class BotSettings:
    """Configurações do bot.

    Attributes:
        command_prefix: Caractere que inicia um comando (ex: "!")
        plugin_modules: Fábricas de plugin no formato ``modulo:funcao``
        auto_load_plugins: Carrega ``plugin_modules`` na inicialização
        host: Host do servidor HTTP
        port: Porta do servidor HTTP
        memory_limit_mb: Limite de RSS para o health check de memória
        cooldown_prune_interval_ms: Período de poda de cooldowns expirados
    """

    command_prefix: str = "!"
    plugin_modules: tuple[str, ...] = field(default_factory=tuple)
    auto_load_plugins: bool = True
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    memory_limit_mb: int = 512
    cooldown_prune_interval_ms: int = 300_000

    def validate(self) -> list[str]:
        """Valida configurações do bot."""
        errors: list[str] = []
        if len(self.command_prefix) != 1 or self.command_prefix.isspace():
            errors.append("COMMAND_PREFIX deve ser um único caractere visível")
        if not 0 < self.port < 65536:
            errors.append("PORT fora do intervalo 1-65535")
        if self.memory_limit_mb <= 0:
            errors.append("MEMORY_LIMIT_MB deve ser > 0")
        if self.cooldown_prune_interval_ms <= 0:
            errors.append("COOLDOWN_PRUNE_INTERVAL_MS deve ser > 0")
        for spec in self.plugin_modules:
            if spec.count(":") > 1:
                errors.append(f"PLUGIN_MODULES entrada inválida: {spec}")
        return errors


def _load_bot_from_env() -> BotSettings:
    """Carrega BotSettings de variáveis de ambiente."""
    return BotSettings(
        command_prefix=os.getenv("COMMAND_PREFIX", "!"),
        plugin_modules=_parse_csv(os.getenv("PLUGIN_MODULES", "")),
        auto_load_plugins=os.getenv("AUTO_LOAD_PLUGINS", "true").lower() in ("true", "1", "yes"),
        host=os.getenv("HOST", "0.0.0.0"),  # noqa: S104
        port=int(os.getenv("PORT", "3000")),
        memory_limit_mb=int(os.getenv("MEMORY_LIMIT_MB", "512")),
        cooldown_prune_interval_ms=int(os.getenv("COOLDOWN_PRUNE_INTERVAL_MS", "300000")),
    )


@lru_cache(maxsize=1)
def get_bot_settings() -> BotSettings:
    """Retorna instância cacheada de BotSettings."""
    return _load_bot_from_env()
