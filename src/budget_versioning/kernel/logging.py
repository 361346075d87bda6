"""
Structured logging for Budget Versioning.

Every façade operation logs through LogOperation. The correlation id lives in
structlog's context variables, so the start, completion or failure of a
command and the event store lines it triggers all carry the same id.
"""

import logging
import os
import secrets
import sys
import time
from typing import Any

import structlog

REDACTED = "***REDACTED***"

# Fields identifying people are kept out of the logs
REDACTED_FIELDS = frozenset({"actor_id", "created_by", "token", "secret", "api_key"})


def generate_correlation_id() -> str:
    """22-character URL-safe id (128 bits of randomness)."""
    return secrets.token_urlsafe(16)


def get_correlation_id() -> str:
    """Correlation id of the current context, created on first use."""
    cid = structlog.contextvars.get_contextvars().get("correlation_id")
    if not cid:
        cid = generate_correlation_id()
        set_correlation_id(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def _ensure_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.setdefault("correlation_id", get_correlation_id())
    return event_dict


def _renderer(json_output: bool) -> list[structlog.types.Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.processors.ExceptionRenderer(),
        structlog.dev.ConsoleRenderer(colors=False),
    ]


def configure_logging(*, json_output: bool = False, log_level: str = "INFO") -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        json_output: JSON lines (production) instead of console output
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    # stderr keeps stdout free for CLI output such as --json documents
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _ensure_correlation_id,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            *_renderer(json_output),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def is_production() -> bool:
    """True when ENVIRONMENT=production."""
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """
    Replace the values of identifying fields.

    Example:
        >>> redact_context({"actor_id": "maria", "version_id": "v-1"})
        {'actor_id': '***REDACTED***', 'version_id': 'v-1'}
    """
    return {key: REDACTED if key in REDACTED_FIELDS else value for key, value in context.items()}


class LogOperation:
    """
    Log the start and the outcome of an operation, with its duration.

    Example:
        with LogOperation(logger, "approve_version", version_id=version_id):
            ...
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger, operation: str, **context: Any):
        self.logger = logger
        self.operation = operation
        self.fields = {"operation": operation, **redact_context(context)}
        self._started = 0.0

    def __enter__(self) -> "LogOperation":
        self._started = time.perf_counter()
        self.logger.info(f"{self.operation} started", **self.fields)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        elapsed_ms = round((time.perf_counter() - self._started) * 1000, 2)

        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed", duration_ms=elapsed_ms, **self.fields
            )
            return

        # Stack traces outside production only
        self.logger.error(
            f"{self.operation} failed",
            duration_ms=elapsed_ms,
            error_type=exc_type.__name__,
            error=str(exc_val),
            exc_info=not is_production(),
            **self.fields,
        )
