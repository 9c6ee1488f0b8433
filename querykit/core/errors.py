"""
Typed failures raised by the query layer.

Every error carries a human-readable message and a ``details`` dict that
identifies the offending field, operator or entity. The HTTP layer maps
them onto status codes with ``get_status_code``; the query layer itself
never swallows them.
"""

from typing import Any


class QueryKitError(Exception):
    """Base exception for all query layer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(QueryKitError):
    """
    Raised when a query is shaped in a way the entity cannot support.

    Examples:
    - Field path that does not resolve to a member of the entity
    - Class that is not a mapped entity
    - Soft-delete helper used on a model without the soft-delete columns
    - Secondary ordering requested without a primary ordering

    Never retried; the request or the calling code has to change.

    HTTP Status: 400 Bad Request
    """

    pass


class ValidationError(QueryKitError):
    """
    Raised when caller-supplied values are unusable.

    Examples:
    - Filter value that cannot be coerced to the member type
    - Page number or page size below 1
    - More than one row matched where a single row was expected

    HTTP Status: 400 Bad Request
    """

    pass


class UnsupportedOperatorError(ValidationError):
    """
    Raised when a filter operator is not defined for the member's type.

    Examples:
    - CONTAINS on a numeric column
    - BIGGER on a boolean column
    - EMPTY on a non-nullable numeric column

    HTTP Status: 400 Bad Request
    """

    pass


class StoreError(QueryKitError):
    """
    Raised when the backing database fails a round-trip.

    Examples:
    - Connection refused or dropped
    - Query exceeded the configured timeout
    - Constraint violation while flushing a soft delete

    ``transient`` tells the caller whether a retry may succeed. The original
    driver exception is chained as ``__cause__``.

    HTTP Status: 503 Service Unavailable
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        transient: bool = False,
    ):
        super().__init__(message, details)
        self.transient = transient


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ConfigurationError: 400,
    ValidationError: 400,
    UnsupportedOperatorError: 400,
    StoreError: 503,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Subclasses without an explicit entry inherit the code of their
    nearest mapped ancestor.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[cls]
    return 500
