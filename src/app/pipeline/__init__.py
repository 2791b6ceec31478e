"""Pipeline de eventos e middlewares embutidos."""

from app.pipeline.middlewares import (
    APOLOGY_MESSAGE,
    command_middleware,
    error_boundary_middleware,
    logging_middleware,
    rate_limit_middleware,
)
from app.pipeline.pipeline import EventPipeline, Middleware, PipelineContext, Proceed

__all__ = [
    "APOLOGY_MESSAGE",
    "EventPipeline",
    "Middleware",
    "PipelineContext",
    "Proceed",
    "command_middleware",
    "error_boundary_middleware",
    "logging_middleware",
    "rate_limit_middleware",
]
