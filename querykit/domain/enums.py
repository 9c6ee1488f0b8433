"""
Domain enums for search requests and entity member metadata.

These enums are the request-shaped vocabulary shared by the schemas,
the predicate builder and the query builder.
"""

from enum import Enum


class FilterOperator(str, Enum):
    """Comparison applied by a single filter condition."""

    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    BIGGER = "BIGGER"
    BIGGER_EQUALS = "BIGGER_EQUALS"
    SMALLER = "SMALLER"
    SMALLER_EQUALS = "SMALLER_EQUALS"
    EMPTY = "EMPTY"
    NOT_EMPTY = "NOT_EMPTY"

    @classmethod
    def _missing_(cls, value: object) -> "FilterOperator | None":
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class LogicalOperator(str, Enum):
    """How the conditions of one filter specification are combined."""

    AND = "AND"
    OR = "OR"

    @classmethod
    def _missing_(cls, value: object) -> "LogicalOperator | None":
        if isinstance(value, str):
            normalized = value.strip().upper()
            # Wire aliases used by older clients
            aliases = {"AND_ALSO": cls.AND, "OR_ELSE": cls.OR}
            if normalized in aliases:
                return aliases[normalized]
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class SortDirection(str, Enum):
    """Direction of one ordering step."""

    ASCENDING = "asc"
    DESCENDING = "desc"

    @classmethod
    def _missing_(cls, value: object) -> "SortDirection | None":
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in ("asc", "ascending"):
                return cls.ASCENDING
            if normalized in ("desc", "descending"):
                return cls.DESCENDING
        return None


class MemberKind(str, Enum):
    """Value category of a mapped column, derived from its SQL type."""

    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    UUID = "uuid"
    ENUM = "enum"
    OTHER = "other"


TEXT_OPERATORS = frozenset(
    {FilterOperator.CONTAINS, FilterOperator.STARTS_WITH, FilterOperator.ENDS_WITH}
)

ORDERING_OPERATORS = frozenset(
    {
        FilterOperator.BIGGER,
        FilterOperator.BIGGER_EQUALS,
        FilterOperator.SMALLER,
        FilterOperator.SMALLER_EQUALS,
    }
)

PRESENCE_OPERATORS = frozenset({FilterOperator.EMPTY, FilterOperator.NOT_EMPTY})

# Kinds with a total order that ordering comparisons are meaningful for.
# Enums are stored by name, so their SQL ordering is alphabetical, not declared.
ORDERED_KINDS = frozenset(
    {
        MemberKind.TEXT,
        MemberKind.INTEGER,
        MemberKind.FLOAT,
        MemberKind.DECIMAL,
        MemberKind.DATETIME,
        MemberKind.DATE,
        MemberKind.TIME,
    }
)
