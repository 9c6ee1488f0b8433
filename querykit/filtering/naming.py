"""Conversion of client-facing field paths to entity attribute names."""

import re

from querykit.core.errors import ConfigurationError

# ':' is the canonical nesting delimiter; '.' is accepted for query-string clients
FIELD_PATH_DELIMITERS = (":", ".")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def camel_to_snake(segment: str) -> str:
    """
    Convert one camelCase (or PascalCase) segment to snake_case.

    Already snake_case segments are returned unchanged.

    Examples:
        >>> camel_to_snake("createdAt")
        'created_at'
        >>> camel_to_snake("HTTPStatus")
        'http_status'
        >>> camel_to_snake("age_in_months")
        'age_in_months'
    """
    return _CAMEL_BOUNDARY.sub("_", segment.strip()).lower()


def squash(name: str) -> str:
    """Case- and underscore-insensitive form of a member name."""
    return name.replace("_", "").casefold()


def split_field_path(path: str) -> list[str]:
    """
    Split a field path into its segments.

    Raises:
        ConfigurationError: If the path is blank or has an empty segment
    """
    if not path or not path.strip():
        raise ConfigurationError("Field path cannot be empty", details={"field": path})

    normalized = path.strip()
    for delimiter in FIELD_PATH_DELIMITERS[1:]:
        normalized = normalized.replace(delimiter, FIELD_PATH_DELIMITERS[0])

    segments = [segment.strip() for segment in normalized.split(FIELD_PATH_DELIMITERS[0])]
    if any(not segment for segment in segments):
        raise ConfigurationError(
            f"Field path '{path}' contains an empty segment",
            details={"field": path},
        )
    return segments
