"""
Structured logging for the quote dispatch core.

Provides correlation IDs, context propagation, PII redaction and JSON output
for production observability.

Fun fact: Correlation IDs let a support engineer follow one award click from
the operator's browser all the way to the notification worker thread!
"""

import contextvars
import logging
import os
import secrets
import sys
import time
from typing import Any

import structlog
from pydantic import ValidationError as ModelValidationError

from quote_dispatch.kernel.errors import BusinessRuleDenial, IdempotentNoOp, ValidationFailed

EXPECTED_FAILURES = (BusinessRuleDenial, ValidationFailed, IdempotentNoOp, ModelValidationError)

# Context variable for correlation ID (thread-safe)
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


def generate_correlation_id() -> str:
    """Generate a new 128-bit URL-safe correlation ID."""
    return secrets.token_urlsafe(16)


def get_correlation_id() -> str:
    """Get the current correlation ID, or generate a new one if not set."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add correlation ID to log event."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    log_level: str = "INFO",
) -> None:
    """
    Configure structured logging for the application.

    Args:
        json_output: If True, output JSON logs (for production).
                    If False, output human-readable console logs (for development).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Quiet the health server's request log
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_correlation_id,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger for the given module.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def is_production() -> bool:
    """True when the ENVIRONMENT variable is 'production'."""
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


# Fields never written to logs verbatim (PII, pricing, capability tokens)
REDACTED_FIELDS = {
    "actor_id",
    "customer_id",
    "email",
    "offer_token",
    "token",
    "total_price",
    "internal_cost",
    "internal_shipping_cost",
    "password",
    "secret",
}


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """
    Redact sensitive fields from log context.

    Example:
        >>> redact_context({"actor_id": "alice", "quote_id": "q-1"})
        {"actor_id": "***REDACTED***", "quote_id": "q-1"}
    """
    return {
        k: "***REDACTED***" if k in REDACTED_FIELDS else v
        for k, v in context.items()
    }


class LogOperation:
    """Context manager for logging operations with automatic timing."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        """
        Args:
            logger: Structured logger instance
            operation: Operation name (e.g., "award", "add_destinations")
            **context: Additional context to include in logs
        """
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: float = 0.0

    def __enter__(self) -> "LogOperation":
        self.start_time = time.perf_counter()
        self.logger.info(
            f"{self.operation} started",
            operation=self.operation,
            **redact_context(self.context),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        redacted = redact_context(self.context)

        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed",
                operation=self.operation,
                duration_ms=duration_ms,
                **redacted,
            )
            return

        # Denials are expected outcomes; only unexpected failures get stack traces
        if issubclass(exc_type, EXPECTED_FAILURES):
            self.logger.info(
                f"{self.operation} denied",
                operation=self.operation,
                duration_ms=duration_ms,
                reason=str(exc_val),
                **redacted,
            )
        else:
            self.logger.error(
                f"{self.operation} failed",
                operation=self.operation,
                duration_ms=duration_ms,
                exc_info=not is_production(),
                **redacted,
            )
