"""
FastAPI exception handlers for query layer errors.

Host applications call ``register_exception_handlers(app)`` once at startup
so that errors raised inside list/search endpoints reach clients as

    {"error": "ValidationError", "message": "...", "details": {...}}

with the status code from ``get_status_code``.
"""

import logging
import re
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from querykit.core.config import AppEnvironment, settings
from querykit.core.errors import QueryKitError, StoreError, get_status_code
from querykit.core.observability import get_request_id

logger = logging.getLogger(__name__)

_SENSITIVE_PATTERNS = [
    re.compile(r"[/\\][\w/-]+\.py"),  # File paths
    re.compile(r"SELECT.*FROM", re.IGNORECASE),
    re.compile(r"(INSERT INTO|UPDATE .* SET|DELETE FROM)", re.IGNORECASE),
]

# Keys that describe driver internals rather than the request
_INTERNAL_KEYS = frozenset({"driver_error"})


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """
    Strip driver internals and SQL fragments from error details in production.

    Args:
        details: Original error details dictionary

    Returns:
        Sanitized details dictionary
    """
    if settings.app_env != AppEnvironment.PROD:
        return details

    sanitized: dict[str, Any] = {}
    for key, value in details.items():
        if key in _INTERNAL_KEYS:
            continue
        if isinstance(value, str) and any(p.search(value) for p in _SENSITIVE_PATTERNS):
            sanitized[key] = "[redacted]"
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_error_details(value)
        else:
            sanitized[key] = value
    return sanitized


def register_exception_handlers(app: FastAPI) -> None:
    """Install the query layer's exception handlers on ``app``."""

    @app.exception_handler(QueryKitError)
    async def querykit_error_handler(request: Request, exc: QueryKitError) -> JSONResponse:
        """
        Map query layer errors to structured JSON responses.

        Args:
            request: The incoming request
            exc: The query layer exception raised

        Returns:
            JSON response with error details
        """
        status_code = get_status_code(exc)
        context = {
            "details": exc.details,
            "path": request.url.path,
            "request_id": get_request_id(),
        }

        if status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message}", extra=context)
        else:
            logger.warning(f"{exc.__class__.__name__}: {exc.message}", extra=context)

        headers = None
        if isinstance(exc, StoreError) and exc.transient:
            headers = {"Retry-After": "1"}

        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": _sanitize_error_details(exc.details),
            },
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all handler for unexpected exceptions.

        Logs the full exception and returns a generic 500 error to the client
        without exposing internal implementation details.
        """
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "request_id": get_request_id()},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )
