"""Logging estruturado JSON do zapbot.

Uso:
    from config.logging import configure_logging, get_logger

    # Na inicialização (app/bootstrap/)
    configure_logging(level="INFO", service_name="zapbot")

    # Em qualquer módulo
    logger = get_logger(__name__)
    logger.info("command_executed", extra={"command": "ping"})

Campos presentes em todo log: correlation_id, service, level, logger,
message, asctime. Conteúdo de mensagens nunca vai para o log, apenas
prévias truncadas.
"""

from config.logging.config import configure_logging, get_logger, log_fallback
from config.logging.filters import CorrelationIdFilter
from config.logging.formatters import (
    FIELD_RENAME_MAP,
    REQUIRED_LOG_FIELDS,
    create_json_formatter,
    preview,
)

__all__ = [
    "FIELD_RENAME_MAP",
    "REQUIRED_LOG_FIELDS",
    "CorrelationIdFilter",
    "configure_logging",
    "create_json_formatter",
    "get_logger",
    "log_fallback",
    "preview",
]
