"""
Fluent query-builder pipeline over SQLAlchemy ``Select`` statements.

A ``QueryBuilder`` accumulates filter criteria, an ordering chain, a
pagination window, eager loads and tracking options, then runs exactly the
round-trips a terminal operation needs against an ``AsyncSession``:

    page = await (
        QueryBuilder(db, Pet)
        .apply_predicate(exclude_deleted)
        .apply_filters(request.filter)
        .apply_sorting(request.sorting, default_key="createdAt")
        .apply_pagination(request.pagination)
        .include("owner")
        .as_no_tracking()
        .to_page()
    )

Stages mutate and return the same instance. A builder belongs to one
request and one task; build a new one per query.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import aliased, selectinload
from sqlalchemy.sql.elements import ColumnElement

from querykit.core.config import settings
from querykit.core.errors import ConfigurationError, ValidationError
from querykit.domain.enums import LogicalOperator, SortDirection
from querykit.filtering.field_paths import resolve_field_path
from querykit.filtering.predicates import FilterInput, PredicateBuilder
from querykit.repos.common import entity_label, store_call
from querykit.schemas.search import PagedResult, PaginationWindow, SortEntry

logger = logging.getLogger(__name__)

SortKey = str | ColumnElement[Any] | Any
SelectTransform = Callable[[Select[Any]], Select[Any]]


def _statement_entity(stmt: Select[Any]) -> type | None:
    descriptions = stmt.column_descriptions
    if not descriptions:
        return None
    return descriptions[0].get("entity")


class QueryBuilder:
    """
    Composable query over one mapped entity.

    Args:
        db: Async database session the terminal operations run on
        source: Mapped entity class or a ``Select`` to start from
        predicate_builder: Builder used by ``apply_filters``; defaults to one
            following ``settings.case_sensitive_text_match``
    """

    def __init__(
        self,
        db: Any,
        source: type | Select[Any],
        predicate_builder: PredicateBuilder | None = None,
    ):
        if isinstance(source, Select):
            self._stmt: Select[Any] = source
            self._entity = _statement_entity(source)
        else:
            self._stmt = select(source)
            self._entity = source

        self._db = db
        self._predicates = predicate_builder or PredicateBuilder()
        self._orderings: list[ColumnElement[Any]] = []
        self._sort_joins: dict[tuple[str, ...], Any] = {}
        self._join_clauses: list[Any] = []
        self._skip: int | None = None
        self._take: int | None = None
        self._page: tuple[int, int] | None = None
        self._options: list[Any] = []
        self._tracking = True
        self._distinct = False

    @classmethod
    def from_statement(
        cls,
        db: Any,
        stmt: Select[Any],
        predicate_builder: PredicateBuilder | None = None,
    ) -> "QueryBuilder":
        """Start from an existing ``Select`` (joins, projections, prior criteria)."""
        return cls(db, stmt, predicate_builder)

    @property
    def entity(self) -> type | None:
        return self._entity

    @property
    def entity_name(self) -> str:
        return entity_label(self._entity)

    def _require_entity(self, stage: str) -> type:
        if self._entity is None:
            raise ConfigurationError(
                f"'{stage}' needs a statement that selects a mapped entity",
                details={"stage": stage},
            )
        return self._entity

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def apply_filters(
        self,
        spec: FilterInput | None,
        logical_operator: LogicalOperator | None = None,
    ) -> "QueryBuilder":
        """
        Narrow the query by filter conditions.

        ``None`` or an empty specification leaves the query unchanged.

        Raises:
            ConfigurationError: If a field path does not resolve
            ValidationError: If a value or operator does not fit its member
        """
        if spec is None:
            return self
        entity = self._require_entity("apply_filters")
        predicate = self._predicates.build(entity, spec, logical_operator)
        if predicate is not None:
            self._stmt = self._stmt.where(predicate)
        return self

    def apply_predicate(self, transform: SelectTransform | None) -> "QueryBuilder":
        """Apply a ``Select -> Select`` transform such as ``exclude_deleted``."""
        if transform is None:
            return self
        result = transform(self._stmt)
        if not isinstance(result, Select):
            raise ConfigurationError(
                "Predicate transform must return a Select statement",
                details={"returned": type(result).__name__},
            )
        self._stmt = result
        return self

    def where(self, *criteria: Any) -> "QueryBuilder":
        """Add raw SQLAlchemy criteria."""
        if criteria:
            self._stmt = self._stmt.where(*criteria)
        return self

    # ------------------------------------------------------------------
    # Sorting
    # ------------------------------------------------------------------

    def apply_sorting(
        self,
        entries: Iterable[SortEntry] | None,
        default_key: SortKey | None = None,
        default_direction: SortDirection | None = None,
    ) -> "QueryBuilder":
        """
        Append an ordering chain built from sort entries.

        With no entries the default key is applied instead. Without an explicit
        default the configured ``default_sort_field`` is used when the entity
        has that member.

        Raises:
            ConfigurationError: If a sort path does not resolve, ends on a
                relationship or navigates through a collection
        """
        entries = list(entries or [])
        if entries:
            for entry in entries:
                self._orderings.append(self._order_clause(entry.field_path, entry.direction))
            return self

        if default_key is not None:
            direction = default_direction or SortDirection.DESCENDING
            self._orderings.append(self._order_clause(default_key, direction))
            return self

        entity = self._entity
        if entity is None:
            return self
        direction = default_direction or settings.default_sort_direction
        try:
            clause = self._order_clause(settings.default_sort_field, direction)
        except ConfigurationError:
            logger.debug(
                f"{entity_label(entity)} has no '{settings.default_sort_field}' member; "
                f"leaving results unordered"
            )
            return self
        self._orderings.append(clause)
        return self

    def order_by(self, key: SortKey) -> "QueryBuilder":
        """Replace the ordering chain with an ascending primary key."""
        self._reset_ordering()
        self._orderings.append(self._order_clause(key, SortDirection.ASCENDING))
        return self

    def order_by_descending(self, key: SortKey) -> "QueryBuilder":
        """Replace the ordering chain with a descending primary key."""
        self._reset_ordering()
        self._orderings.append(self._order_clause(key, SortDirection.DESCENDING))
        return self

    def then_by(self, key: SortKey) -> "QueryBuilder":
        """Append an ascending secondary key."""
        self._require_ordering("then_by")
        self._orderings.append(self._order_clause(key, SortDirection.ASCENDING))
        return self

    def then_by_descending(self, key: SortKey) -> "QueryBuilder":
        """Append a descending secondary key."""
        self._require_ordering("then_by_descending")
        self._orderings.append(self._order_clause(key, SortDirection.DESCENDING))
        return self

    def _require_ordering(self, stage: str) -> None:
        if not self._orderings:
            raise ConfigurationError(
                f"'{stage}' requires a primary ordering; call order_by or apply_sorting first",
                details={"stage": stage},
            )

    def _reset_ordering(self) -> None:
        self._orderings.clear()
        self._sort_joins.clear()
        self._join_clauses.clear()

    def _order_clause(self, key: SortKey, direction: SortDirection) -> ColumnElement[Any]:
        if isinstance(key, str):
            expression = self._sort_expression(key)
        else:
            expression = key
        if direction is SortDirection.DESCENDING:
            return expression.desc()
        return expression.asc()

    def _sort_expression(self, path: str) -> Any:
        entity = self._require_entity("sorting")
        resolved = resolve_field_path(entity, path)
        leaf = resolved.column
        if leaf is None:
            raise ConfigurationError(
                f"Cannot sort by '{path}': it is a relationship, not a column",
                details={"field": path, "entity": entity_label(entity)},
            )
        if not resolved.navigations:
            return leaf.attribute

        parent: Any = entity
        prefix: tuple[str, ...] = ()
        for navigation in resolved.navigations:
            if navigation.uselist:
                raise ConfigurationError(
                    f"Cannot sort by '{path}': '{navigation.name}' is a collection",
                    details={"field": path, "segment": navigation.name},
                )
            prefix = (*prefix, navigation.name)
            target = self._sort_joins.get(prefix)
            if target is None:
                target = aliased(navigation.target)
                self._sort_joins[prefix] = target
                self._join_clauses.append(getattr(parent, navigation.name).of_type(target))
            parent = target
        return getattr(parent, leaf.name)

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def apply_pagination(self, window: PaginationWindow | None) -> "QueryBuilder":
        """
        Restrict row-returning terminals to one page.

        ``None`` or an empty window clears pagination. A partially filled window
        gets page 1 or the configured default page size for the missing half.

        Raises:
            ValidationError: If page number or size is below 1 or the size
                exceeds ``settings.max_page_size``
        """
        if window is None or window.is_empty:
            self._skip = None
            self._take = None
            self._page = None
            return self

        page_number = window.page_number if window.page_number is not None else 1
        page_size = (
            window.page_size if window.page_size is not None else settings.default_page_size
        )
        if page_number < 1:
            raise ValidationError(
                "Page number must be at least 1",
                details={"page_number": page_number},
            )
        if page_size < 1:
            raise ValidationError(
                "Page size must be at least 1",
                details={"page_size": page_size},
            )
        if page_size > settings.max_page_size:
            raise ValidationError(
                f"Page size cannot exceed {settings.max_page_size}",
                details={"page_size": page_size, "max_page_size": settings.max_page_size},
            )

        self._use_page(page_number, page_size)
        return self

    def _use_page(self, page_number: int, page_size: int) -> tuple[int, int]:
        self._skip = (page_number - 1) * page_size
        self._take = page_size
        self._page = (page_number, page_size)
        return self._page

    def skip(self, count: int) -> "QueryBuilder":
        """Skip the first ``count`` rows."""
        if count < 0:
            raise ValidationError("Skip count cannot be negative", details={"skip": count})
        self._skip = count
        self._page = None
        return self

    def take(self, count: int) -> "QueryBuilder":
        """Return at most ``count`` rows."""
        if count < 1:
            raise ValidationError("Take count must be at least 1", details={"take": count})
        self._take = count
        self._page = None
        return self

    # ------------------------------------------------------------------
    # Loading options
    # ------------------------------------------------------------------

    def include(self, *paths: str) -> "QueryBuilder":
        """
        Eager-load relationships, e.g. ``include("owner", "tags")`` or
        ``include("owner:address")`` for a nested chain.
        """
        entity = self._require_entity("include")
        for path in paths:
            resolved = resolve_field_path(entity, path)
            if resolved.column is not None:
                raise ConfigurationError(
                    f"Cannot include '{path}': it is a column, not a relationship",
                    details={"field": path, "entity": entity_label(entity)},
                )
            option = None
            for navigation in resolved.navigations:
                if option is None:
                    option = selectinload(navigation.attribute)
                else:
                    option = option.selectinload(navigation.attribute)
            self._options.append(option)
        return self

    def as_tracking(self) -> "QueryBuilder":
        """Keep loaded entities attached to the session (the default)."""
        self._tracking = True
        return self

    def as_no_tracking(self) -> "QueryBuilder":
        """Detach newly loaded entities from the session after each terminal."""
        self._tracking = False
        return self

    def distinct(self) -> "QueryBuilder":
        """
        Remove duplicate rows from the result.

        Cannot be combined with sort keys on related entities; row terminals
        raise ConfigurationError for that combination.
        """
        self._distinct = True
        return self

    # ------------------------------------------------------------------
    # Statement assembly
    # ------------------------------------------------------------------

    def _filtered(self) -> Select[Any]:
        stmt = self._stmt
        if self._distinct:
            stmt = stmt.distinct()
        return stmt

    def _ordered(self) -> Select[Any]:
        if self._distinct and self._join_clauses:
            # SELECT DISTINCT needs every ORDER BY expression in its select list
            raise ConfigurationError(
                "distinct() cannot be combined with sorting by a related entity's field",
                details={"entity": self.entity_name, "sort_joins": len(self._join_clauses)},
            )
        stmt = self._filtered()
        for clause in self._join_clauses:
            stmt = stmt.outerjoin(clause)
        if self._orderings:
            stmt = stmt.order_by(*self._orderings)
        if self._options:
            stmt = stmt.options(*self._options)
        return stmt

    def _windowed(self) -> Select[Any]:
        stmt = self._ordered()
        if self._skip:
            stmt = stmt.offset(self._skip)
        if self._take is not None:
            stmt = stmt.limit(self._take)
        return stmt

    def as_select(self) -> Select[Any]:
        """The statement a row-returning terminal would execute."""
        return self._windowed()

    # ------------------------------------------------------------------
    # Terminals
    # ------------------------------------------------------------------

    async def _fetch(self, stmt: Select[Any], operation: str) -> list[Any]:
        snapshot = None if self._tracking else set(self._identity_map().keys())

        async with store_call(operation, self.entity_name):
            result = await self._db.execute(stmt)
            if len(stmt.column_descriptions) == 1:
                rows = list(result.scalars().all())
            else:
                rows = list(result.all())

        if snapshot is not None:
            self._detach_new(snapshot)
        return rows

    def _identity_map(self) -> Any:
        return self._db.sync_session.identity_map

    def _detach_new(self, snapshot: set[Any]) -> None:
        identity_map = self._identity_map()
        detached = 0
        for key in list(identity_map.keys()):
            if key in snapshot:
                continue
            instance = identity_map.get(key)
            if instance is not None:
                self._db.expunge(instance)
                detached += 1
        if detached:
            logger.debug(f"Detached {detached} untracked {self.entity_name} instances")

    async def to_list(self) -> list[Any]:
        """All rows in the current window."""
        return await self._fetch(self._windowed(), "to_list")

    def _limited(self, limit: int) -> Select[Any]:
        return self._ordered().limit(limit)

    async def first_or_none(self) -> Any | None:
        """The first matching row in the current ordering, or None; ignores the window."""
        rows = await self._fetch(self._limited(1), "first_or_none")
        return rows[0] if rows else None

    async def single_or_none(self) -> Any | None:
        """
        The only matching row, or None. The pagination window is ignored.

        Raises:
            ValidationError: If more than one row matches
        """
        rows = await self._fetch(self._limited(2), "single_or_none")
        if len(rows) > 1:
            raise ValidationError(
                f"Expected at most one {self.entity_name}, found several",
                details={"entity": self.entity_name},
            )
        return rows[0] if rows else None

    async def count(self) -> int:
        """Number of rows matching the filters, ignoring sorting and window."""
        subquery = self._filtered().order_by(None).subquery()
        stmt = select(func.count()).select_from(subquery)
        async with store_call("count", self.entity_name):
            result = await self._db.execute(stmt)
            return int(result.scalar_one())

    async def any(self) -> bool:
        """Whether at least one row matches the filters."""
        stmt = select(self._filtered().order_by(None).exists())
        async with store_call("any", self.entity_name):
            result = await self._db.execute(stmt)
            return bool(result.scalar())

    async def to_list_with_count(self) -> tuple[list[Any], int]:
        """
        Rows in the current window plus the total number of matching rows.

        Counts first, then reads the page; the two reads are independent.
        """
        stmt = self._windowed()
        total = await self.count()
        items = await self._fetch(stmt, "to_list")
        return items, total

    async def to_page(self, window: PaginationWindow | None = None) -> PagedResult:
        """
        One page wrapped with its paging metadata.

        Uses ``window`` when given, the window from ``apply_pagination``
        otherwise, and page 1 with the default page size as a last resort.
        """
        if window is not None:
            self.apply_pagination(window)
        page = self._page
        if page is None:
            page = self._use_page(1, settings.default_page_size)
        page_number, page_size = page

        items, total = await self.to_list_with_count()
        logger.info(
            f"Loaded {self.entity_name} page",
            extra={
                "page_number": page_number,
                "page_size": page_size,
                "returned": len(items),
                "total_count": total,
            },
        )
        return PagedResult(
            items=items,
            total_count=total,
            page_number=page_number,
            page_size=page_size,
        )
