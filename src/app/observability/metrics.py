"""Registro de métricas via structured logging.

As métricas são emitidas como logs estruturados (campo ``metric_type``) e
agregadas depois pelo coletor de logs.

Métricas suportadas:
- Latência: tempo de processamento por componente/operação
- Contador: eventos discretos (comando executado, mensagem descartada)
- Reconexão: tentativas de reconexão da sessão com o delay aplicado

Uso:
    from app.observability.metrics import record_latency, record_counter

    start = time.perf_counter()
    # ... operação ...
    record_latency("pipeline", "execute", (time.perf_counter() - start) * 1000)

    record_counter("commands", "executed", labels={"command": "ping"})
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def record_latency(
    component: str,
    operation: str,
    latency_ms: float,
    correlation_id: str | None = None,
) -> None:
    """Registra latência de operação.

    Args:
        component: Nome do componente (ex: "pipeline", "dispatcher")
        operation: Nome da operação (ex: "execute", "dispatch")
        latency_ms: Latência em milissegundos
        correlation_id: ID de correlação para rastreamento
    """
    logger.info(
        "metric_latency",
        extra={
            "metric_type": "latency",
            "component": component,
            "operation": operation,
            "latency_ms": round(latency_ms, 2),
            "correlation_id": correlation_id,
        },
    )


def record_counter(
    component: str,
    name: str,
    value: int = 1,
    labels: dict[str, str | int] | None = None,
) -> None:
    """Registra incremento de contador.

    Args:
        component: Nome do componente (ex: "commands", "rate_limiter")
        name: Nome do contador (ex: "executed", "denied")
        value: Incremento (default 1)
        labels: Rótulos adicionais sem PII
    """
    extra: dict[str, object] = {
        "metric_type": "counter",
        "component": component,
        "counter": name,
        "value": value,
    }
    if labels:
        extra.update(labels)

    logger.info("metric_counter", extra=extra)


def record_reconnect(attempt: int, delay_ms: int, max_attempts: int) -> None:
    """Registra agendamento de tentativa de reconexão."""
    logger.info(
        "metric_reconnect",
        extra={
            "metric_type": "reconnect",
            "component": "session",
            "attempt": attempt,
            "delay_ms": delay_ms,
            "max_attempts": max_attempts,
        },
    )
