"""
Common repository functions shared by the query builder and the soft-delete helpers.

Every database round-trip issued by the query layer goes through
``store_call``, which bounds it with the configured timeout, records
metrics and translates driver failures into ``StoreError``.

All functions are async - use AsyncSession from SQLAlchemy.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from querykit.core.config import settings
from querykit.core.errors import ConfigurationError, StoreError
from querykit.core.observability import metrics

logger = logging.getLogger(__name__)

__all__ = [
    "entity_label",
    "primary_key_column",
    "store_call",
]

_USE_SETTINGS = object()


def entity_label(model: Any) -> str:
    """Name used for an entity in log lines and metric labels."""
    return getattr(model, "__name__", None) or "unknown"


def primary_key_column(model: type) -> Any:
    """Return the single primary-key column attribute of a mapped class.

    Raises:
        ConfigurationError: If the class is not mapped or has a composite key
    """
    mapper = sa_inspect(model, raiseerr=False)
    if mapper is None or not hasattr(mapper, "primary_key"):
        raise ConfigurationError(
            f"'{entity_label(model)}' is not a mapped entity",
            details={"entity": entity_label(model)},
        )
    if len(mapper.primary_key) != 1:
        raise ConfigurationError(
            f"'{entity_label(model)}' has a composite primary key",
            details={"entity": entity_label(model)},
        )
    column = mapper.primary_key[0]
    return getattr(model, mapper.get_property_by_column(column).key)


@asynccontextmanager
async def store_call(
    operation: str,
    entity: str,
    timeout: Any = _USE_SETTINGS,
) -> AsyncIterator[None]:
    """
    Guard one database round-trip.

    Usage:
        async with store_call("to_list", "Pet"):
            result = await db.execute(stmt)

    Args:
        operation: Terminal operation name (metric label)
        entity: Entity name (metric label)
        timeout: Seconds before the round-trip is abandoned; defaults to
            ``settings.query_timeout_seconds``, None disables the bound

    Raises:
        StoreError: On driver errors, pool timeouts and query timeouts.
            Cancellation is propagated unchanged.
    """
    if timeout is _USE_SETTINGS:
        timeout = settings.query_timeout_seconds

    start = time.time()
    status = "success"
    try:
        async with asyncio.timeout(timeout):
            yield
    except TimeoutError as e:
        status = "error"
        _record_failure(operation, entity, transient=True)
        logger.warning(
            f"Query timed out after {timeout}s",
            extra={"entity": entity, "operation": operation},
        )
        raise StoreError(
            f"Query '{operation}' on {entity} timed out",
            details={"entity": entity, "operation": operation, "timeout_seconds": timeout},
            transient=True,
        ) from e
    except PoolTimeoutError as e:
        status = "error"
        _record_failure(operation, entity, transient=True)
        logger.warning(
            "Connection pool exhausted",
            extra={"entity": entity, "operation": operation},
        )
        raise StoreError(
            f"No database connection available for '{operation}' on {entity}",
            details={"entity": entity, "operation": operation},
            transient=True,
        ) from e
    except DBAPIError as e:
        status = "error"
        transient = bool(e.connection_invalidated)
        _record_failure(operation, entity, transient=transient)
        logger.error(
            f"Database error during {operation}: {e.orig!r}",
            extra={"entity": entity, "operation": operation, "transient": transient},
        )
        raise StoreError(
            f"Database error during '{operation}' on {entity}",
            details={
                "entity": entity,
                "operation": operation,
                "driver_error": type(e.orig).__name__ if e.orig is not None else None,
            },
            transient=transient,
        ) from e
    except asyncio.CancelledError:
        status = "cancelled"
        raise
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        metrics.query_duration_seconds.labels(entity=entity, operation=operation).observe(
            duration
        )
        metrics.queries_total.labels(entity=entity, operation=operation).inc()
        logger.debug(
            f"{operation} on {entity} finished",
            extra={"status": status, "duration_ms": round(duration * 1000, 2)},
        )


def _record_failure(operation: str, entity: str, transient: bool) -> None:
    metrics.store_errors_total.labels(
        entity=entity, operation=operation, transient=str(transient).lower()
    ).inc()
