"""Formatters de logging estruturado JSON."""

from __future__ import annotations

from pythonjsonlogger.json import JsonFormatter

REQUIRED_LOG_FIELDS = frozenset(
    {
        "asctime",
        "levelname",
        "name",
        "message",
        "correlation_id",
        "service",
    }
)

FIELD_RENAME_MAP = {
    "levelname": "level",
    "name": "logger",
}

PREVIEW_MAX_CHARS = 50


def create_json_formatter() -> JsonFormatter:
    """Cria formatter JSON com campos padronizados.

    Exemplo de output:
        {"asctime": "...", "level": "INFO", "logger": "app.bot",
         "message": "message_received", "correlation_id": "3f2a...",
         "service": "zapbot", "conversation_id": "5511...@c.us"}
    """
    format_string = " ".join(f"%({field})s" for field in sorted(REQUIRED_LOG_FIELDS))
    return JsonFormatter(format_string, rename_fields=FIELD_RENAME_MAP)


def preview(text: str | None, limit: int = PREVIEW_MAX_CHARS) -> str:
    """Trunca texto de mensagem para log ("..." quando cortado)."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
