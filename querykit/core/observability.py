"""
Observability module for the query layer.

Provides:
- Structured logging with JSON format and correlation IDs
- Request correlation ID propagation from the surrounding HTTP layer
- Prometheus metrics for query execution and soft-delete mutations

Usage:
    from querykit.core.observability import (
        configure_logging,
        set_correlation_id,
        metrics,
    )
"""

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from querykit.core.config import settings

# ============================================================================
# Context Variables for Request Tracking
# ============================================================================

# Correlation ID - links all query logs of a single request
_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Get the current request ID from context."""
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    """Set the correlation ID for the current request context."""
    _request_id_ctx.set(request_id)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level
    - logger: Logger name
    - message: Log message
    - request_id: Correlation ID (if available)
    - file/line/function: Source location
    - exception: Exception type and message (if any)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """
    Configure root logger with structured JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)


def configure_logging() -> None:
    """Configure logging from settings: JSON when structured logs are on, plain text otherwise."""
    if settings.observability_structured_logs:
        configure_structured_logging(settings.app_log_level)
        return

    logging.basicConfig(
        level=getattr(logging, settings.app_log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with the host application's metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the query layer.

    Metrics groups:
    - Queries: terminal operation count and latency per entity
    - Store errors: failed round-trips, split by transient/fatal
    - Soft delete: lifecycle mutations per entity and outcome
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        self.queries_total = Counter(
            "querykit_queries_total",
            "Database round-trips issued by the query layer",
            ["entity", "operation"],
            registry=registry,
        )

        self.query_duration_seconds = Histogram(
            "querykit_query_duration_seconds",
            "Database round-trip latency",
            ["entity", "operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=registry,
        )

        self.store_errors_total = Counter(
            "querykit_store_errors_total",
            "Database round-trips that failed",
            ["entity", "operation", "transient"],
            registry=registry,
        )

        self.soft_delete_operations_total = Counter(
            "querykit_soft_delete_operations_total",
            "Soft-delete lifecycle mutations",
            ["entity", "action", "result"],
            registry=registry,
        )


metrics = Metrics(_registry)


def get_metrics_text() -> bytes:
    """Render the query layer metrics in Prometheus exposition format."""
    return generate_latest(_registry)
