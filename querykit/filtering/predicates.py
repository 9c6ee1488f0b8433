"""
Predicate builder: filter descriptions to SQLAlchemy boolean expressions.

The builder resolves each condition's field path, coerces the value to the
member's type and applies the operator semantics below. Nested paths are
compiled to ``has()``/``any()`` subqueries, so filtering never adds joins
to the caller's statement.

Operator semantics:
- EQUALS / NOT_EQUALS: exact comparison; a list value means IN / NOT IN;
  a None value means IS NULL / IS NOT NULL. NOT_EQUALS never matches nulls.
- CONTAINS / STARTS_WITH / ENDS_WITH: text members only. Case-insensitive
  unless ``case_sensitive`` is set. LIKE wildcards in the value are escaped.
- BIGGER / BIGGER_EQUALS / SMALLER / SMALLER_EQUALS: ordered members only.
- EMPTY / NOT_EMPTY: null (or empty text). Only for nullable or text members,
  or for paths that end on a relationship.

A date-only value compared with a datetime member compares whole days.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import and_, not_, or_
from sqlalchemy.sql.elements import ColumnElement

from querykit.core.config import settings
from querykit.core.errors import ConfigurationError, UnsupportedOperatorError, ValidationError
from querykit.domain.enums import (
    ORDERED_KINDS,
    ORDERING_OPERATORS,
    PRESENCE_OPERATORS,
    TEXT_OPERATORS,
    FilterOperator,
    LogicalOperator,
    MemberKind,
)
from querykit.filtering.coercion import coerce_value, coerce_values, is_date_only_literal
from querykit.filtering.field_paths import (
    ColumnMember,
    RelationshipMember,
    ResolvedPath,
    resolve_field_path,
)
from querykit.schemas.search import FilterCondition, FilterSpecification

logger = logging.getLogger(__name__)

FilterInput = FilterSpecification | FilterCondition | Iterable[FilterCondition]


def _unsupported(condition: FilterCondition, kind: str) -> UnsupportedOperatorError:
    return UnsupportedOperatorError(
        f"Operator '{condition.operator.value}' is not supported for field "
        f"'{condition.field_path}' of type {kind}",
        details={
            "field": condition.field_path,
            "operator": condition.operator.value,
            "type": kind,
        },
    )


class PredicateBuilder:
    """
    Builds SQLAlchemy predicates for a mapped entity from filter descriptions.

    Stateless apart from its options; one instance can be shared freely.

    Args:
        case_sensitive: Case policy for CONTAINS / STARTS_WITH / ENDS_WITH.
            Defaults to ``settings.case_sensitive_text_match``.
    """

    def __init__(self, case_sensitive: bool | None = None):
        self._case_sensitive = case_sensitive

    @property
    def case_sensitive(self) -> bool:
        if self._case_sensitive is None:
            return settings.case_sensitive_text_match
        return self._case_sensitive

    def build(
        self,
        model: type,
        spec: FilterInput | None,
        logical_operator: LogicalOperator | None = None,
    ) -> ColumnElement[bool] | None:
        """
        Build one predicate for all conditions in ``spec``.

        Args:
            model: Mapped entity class the conditions refer to
            spec: A filter specification, a single condition, or a list of conditions
            logical_operator: Overrides the specification's combinator

        Returns:
            The combined predicate, or None when there is nothing to filter by

        Raises:
            ConfigurationError: If a field path does not resolve
            ValidationError: If a value cannot be coerced or an operator does not
                apply to the member type
        """
        if spec is None:
            return None

        if isinstance(spec, FilterSpecification):
            conditions = list(spec.entries)
            combinator = logical_operator or spec.logical_operator
        elif isinstance(spec, FilterCondition):
            conditions = [spec]
            combinator = logical_operator or LogicalOperator.AND
        else:
            conditions = list(spec)
            combinator = logical_operator or LogicalOperator.AND

        if not conditions:
            return None

        predicates = [self.build_condition(model, condition) for condition in conditions]
        if len(predicates) == 1:
            return predicates[0]
        if combinator is LogicalOperator.OR:
            return or_(*predicates)
        return and_(*predicates)

    def build_condition(self, model: type, condition: FilterCondition) -> ColumnElement[bool]:
        """Build the predicate for a single condition."""
        resolved = resolve_field_path(model, condition.field_path)

        if resolved.column is None:
            predicate = self._relationship_presence(resolved, condition)
        else:
            predicate = self._column_predicate(resolved.column, condition)
            predicate = self._wrap_navigations(resolved, resolved.column, predicate, condition)

        logger.debug(
            f"Built {condition.operator.value} predicate for "
            f"{model.__name__}.{condition.field_path}"
        )
        return predicate

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _wrap_navigations(
        self,
        resolved: ResolvedPath,
        column: ColumnMember,
        predicate: ColumnElement[bool],
        condition: FilterCondition,
    ) -> ColumnElement[bool]:
        if not resolved.navigations:
            return predicate

        # EMPTY through a navigation is also true when the related row is missing,
        # so it is built as the negation of NOT_EMPTY
        negate = condition.operator is FilterOperator.EMPTY
        if negate:
            predicate = self._presence(column, condition, FilterOperator.NOT_EMPTY)

        for navigation in reversed(resolved.navigations):
            predicate = self._navigate(navigation, predicate)

        return not_(predicate) if negate else predicate

    @staticmethod
    def _navigate(
        navigation: RelationshipMember, predicate: ColumnElement[bool] | None = None
    ) -> ColumnElement[bool]:
        if navigation.uselist:
            return navigation.attribute.any(predicate)
        return navigation.attribute.has(predicate)

    def _relationship_presence(
        self, resolved: ResolvedPath, condition: FilterCondition
    ) -> ColumnElement[bool]:
        if condition.operator not in PRESENCE_OPERATORS:
            raise ConfigurationError(
                f"Field '{condition.field_path}' is a relationship; "
                f"only EMPTY and NOT_EMPTY apply to it",
                details={"field": condition.field_path, "operator": condition.operator.value},
            )

        navigations = resolved.navigations
        predicate = self._navigate(navigations[-1])
        for navigation in reversed(navigations[:-1]):
            predicate = self._navigate(navigation, predicate)

        if condition.operator is FilterOperator.EMPTY:
            return not_(predicate)
        return predicate

    # ------------------------------------------------------------------
    # Column comparisons
    # ------------------------------------------------------------------

    def _column_predicate(
        self, member: ColumnMember, condition: FilterCondition
    ) -> ColumnElement[bool]:
        operator = condition.operator

        if operator in PRESENCE_OPERATORS:
            return self._presence(member, condition, operator)
        if operator in TEXT_OPERATORS:
            return self._text_match(member, condition)
        if operator in ORDERING_OPERATORS:
            return self._ordering(member, condition)
        return self._equality(member, condition)

    def _presence(
        self, member: ColumnMember, condition: FilterCondition, operator: FilterOperator
    ) -> ColumnElement[bool]:
        column = member.attribute
        if member.is_text:
            if operator is FilterOperator.EMPTY:
                return or_(column.is_(None), column == "")
            return and_(column.is_not(None), column != "")

        if not member.nullable:
            raise _unsupported(condition, f"non-nullable {member.kind.value}")
        if operator is FilterOperator.EMPTY:
            return column.is_(None)
        return column.is_not(None)

    def _text_match(self, member: ColumnMember, condition: FilterCondition) -> ColumnElement[bool]:
        if not member.is_text:
            raise _unsupported(condition, member.kind.value)
        if condition.value is None:
            raise ValidationError(
                f"Operator '{condition.operator.value}' requires a value for field "
                f"'{condition.field_path}'",
                details={"field": condition.field_path, "operator": condition.operator.value},
            )

        value = coerce_value(member, condition.value, condition.field_path)
        column = member.attribute

        if self.case_sensitive:
            match condition.operator:
                case FilterOperator.CONTAINS:
                    return column.contains(value, autoescape=True)
                case FilterOperator.STARTS_WITH:
                    return column.startswith(value, autoescape=True)
                case _:
                    return column.endswith(value, autoescape=True)

        match condition.operator:
            case FilterOperator.CONTAINS:
                return column.icontains(value, autoescape=True)
            case FilterOperator.STARTS_WITH:
                return column.istartswith(value, autoescape=True)
            case _:
                return column.iendswith(value, autoescape=True)

    def _ordering(self, member: ColumnMember, condition: FilterCondition) -> ColumnElement[bool]:
        if member.kind not in ORDERED_KINDS:
            raise _unsupported(condition, member.kind.value)
        if condition.value is None or isinstance(condition.value, (list, tuple, set)):
            raise ValidationError(
                f"Operator '{condition.operator.value}' requires a single value for field "
                f"'{condition.field_path}'",
                details={"field": condition.field_path, "operator": condition.operator.value},
            )

        column = member.attribute
        if member.kind is MemberKind.DATETIME and is_date_only_literal(condition.value):
            day_start = coerce_value(member, condition.value, condition.field_path)
            day_end = day_start + timedelta(days=1)
            match condition.operator:
                case FilterOperator.BIGGER:
                    return column >= day_end
                case FilterOperator.BIGGER_EQUALS:
                    return column >= day_start
                case FilterOperator.SMALLER:
                    return column < day_start
                case _:
                    return column < day_end

        value = coerce_value(member, condition.value, condition.field_path)
        match condition.operator:
            case FilterOperator.BIGGER:
                return column > value
            case FilterOperator.BIGGER_EQUALS:
                return column >= value
            case FilterOperator.SMALLER:
                return column < value
            case _:
                return column <= value

    def _equality(self, member: ColumnMember, condition: FilterCondition) -> ColumnElement[bool]:
        column = member.attribute
        negate = condition.operator is FilterOperator.NOT_EQUALS
        value = condition.value

        if value is None:
            if not member.nullable:
                raise ValidationError(
                    f"Field '{condition.field_path}' is not nullable "
                    "and cannot be compared with null",
                    details={"field": condition.field_path},
                )
            return column.is_not(None) if negate else column.is_(None)

        if isinstance(value, (list, tuple, set)):
            values = coerce_values(member, value, condition.field_path)
            return column.not_in(values) if negate else column.in_(values)

        if member.kind is MemberKind.DATETIME and is_date_only_literal(value):
            day_start: datetime = coerce_value(member, value, condition.field_path)
            same_day = and_(column >= day_start, column < day_start + timedelta(days=1))
            return not_(same_day) if negate else same_day

        coerced = coerce_value(member, value, condition.field_path)
        return column != coerced if negate else column == coerced


_default_builder = PredicateBuilder()


def build_predicate(
    model: type,
    spec: FilterInput | None,
    logical_operator: LogicalOperator | None = None,
) -> ColumnElement[bool] | None:
    """Build a predicate with the default builder; see ``PredicateBuilder.build``."""
    return _default_builder.build(model, spec, logical_operator)
