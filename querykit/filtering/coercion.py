"""
Coercion of opaque filter values to the declared type of a column.

Filter values arrive from JSON or query strings, so numbers may be strings,
dates are ISO strings and booleans may be "true"/"1"/"yes". Every coercer
either returns a value of the member's python type or raises
``ValidationError`` naming the field.
"""

import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from querykit.core.errors import ValidationError
from querykit.domain.enums import MemberKind
from querykit.filtering.field_paths import ColumnMember

_TRUE_LITERALS = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_LITERALS = frozenset({"0", "false", "no", "n", "off"})


def _bad_value(field: str, kind: str, value: Any) -> ValidationError:
    return ValidationError(
        f"Invalid filter value for field '{field}' (expected {kind})",
        details={"field": field, "expected": kind, "value": repr(value)},
    )


def _coerce_text(field: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    # Numbers are accepted for text columns holding codes ("zip": 90210)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    raise _bad_value(field, "text", value)


def _coerce_bool(field: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value or "").strip().lower()
    if text in _TRUE_LITERALS:
        return True
    if text in _FALSE_LITERALS:
        return False
    raise _bad_value(field, "boolean", value)


def _coerce_integer(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise _bad_value(field, "integer", value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            integral = int(value)
        except (ValueError, OverflowError):
            raise _bad_value(field, "integer", value)
        if value != integral:
            raise _bad_value(field, "integer", value)
        return integral
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        raise _bad_value(field, "integer", value)


def _coerce_float(field: str, value: Any) -> float:
    if isinstance(value, bool):
        raise _bad_value(field, "number", value)
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        raise _bad_value(field, "number", value)


def _coerce_decimal(field: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise _bad_value(field, "decimal", value)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    text = str(value).strip()
    try:
        return Decimal(text)
    except InvalidOperation:
        raise _bad_value(field, "decimal", value)


def is_date_only_literal(value: Any) -> bool:
    """True for ``date`` objects and ``YYYY-MM-DD`` strings without a time part."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


def _coerce_datetime(field: str, value: Any, timezone: bool) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value or "").strip()
        if not text:
            raise _bad_value(field, "datetime", value)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise _bad_value(field, "datetime", value)

    if timezone:
        return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed
    # Naive columns store UTC wall-clock time
    if parsed.tzinfo is not None:
        return parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def _coerce_date(field: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        raise _bad_value(field, "date", value)
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_value(field, "date", value)


def _coerce_time(field: str, value: Any) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value or "").strip())
    except ValueError:
        raise _bad_value(field, "time", value)


def _coerce_uuid(field: str, value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value or "").strip())
    except ValueError:
        raise _bad_value(field, "uuid", value)


def _coerce_enum(field: str, value: Any, member: ColumnMember) -> Any:
    enum_class = member.enum_class
    if enum_class is None:
        # String-valued Enum column without a Python enum class
        if isinstance(value, str) and value in member.enum_values:
            return value
        raise _bad_value(field, f"one of {list(member.enum_values)}", value)

    if isinstance(value, enum_class):
        return value
    for candidate in enum_class:
        if candidate.value == value:
            return candidate
    if isinstance(value, str):
        wanted = value.strip().casefold()
        for candidate in enum_class:
            if candidate.name.casefold() == wanted or str(candidate.value).casefold() == wanted:
                return candidate
    raise _bad_value(field, f"one of {[m.name for m in enum_class]}", value)


def coerce_value(member: ColumnMember, value: Any, field: str | None = None) -> Any:
    """
    Coerce a single filter value to ``member``'s declared type.

    Args:
        member: Resolved column member
        value: Raw value from the request (not None)
        field: Client-facing field path used in error details

    Returns:
        The coerced value

    Raises:
        ValidationError: If the value cannot be represented in the member type
    """
    field = field or member.name
    if isinstance(value, (list, tuple, set, dict)):
        raise _bad_value(field, member.kind.value, value)

    match member.kind:
        case MemberKind.TEXT:
            return _coerce_text(field, value)
        case MemberKind.BOOLEAN:
            return _coerce_bool(field, value)
        case MemberKind.INTEGER:
            return _coerce_integer(field, value)
        case MemberKind.FLOAT:
            return _coerce_float(field, value)
        case MemberKind.DECIMAL:
            return _coerce_decimal(field, value)
        case MemberKind.DATETIME:
            return _coerce_datetime(field, value, member.timezone)
        case MemberKind.DATE:
            return _coerce_date(field, value)
        case MemberKind.TIME:
            return _coerce_time(field, value)
        case MemberKind.UUID:
            return _coerce_uuid(field, value)
        case MemberKind.ENUM:
            return _coerce_enum(field, value, member)
        case _:
            return value


def coerce_values(member: ColumnMember, values: Any, field: str | None = None) -> list[Any]:
    """Coerce every element of a list value (used for IN / NOT IN filters)."""
    field = field or member.name
    if not isinstance(values, (list, tuple, set)):
        raise _bad_value(field, f"list of {member.kind.value}", values)
    if not values:
        raise ValidationError(
            f"Filter value list for field '{field}' cannot be empty",
            details={"field": field},
        )
    return [coerce_value(member, value, field) for value in values]
