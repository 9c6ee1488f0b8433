"""
Request-shaped search schemas: filters, sorting, pagination and paged results.

Field names are snake_case in Python and camelCase on the wire. The filter
and pagination models also accept the short wire names older clients send
(``key``/``equation`` for filters, ``number``/``size`` for pages).
"""

from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from querykit.domain.enums import FilterOperator, LogicalOperator, SortDirection

_REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterCondition(BaseModel):
    """One field/operator/value filtering criterion."""

    model_config = _REQUEST_CONFIG

    field_path: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("field_path", "fieldPath", "field", "key"),
        description="camelCase member name; nested members separated by ':'",
        examples=["name", "owner:city"],
    )
    operator: FilterOperator = Field(
        default=FilterOperator.EQUALS,
        validation_alias=AliasChoices("operator", "op", "equation"),
        examples=[FilterOperator.CONTAINS],
    )
    value: Any = Field(default=None, examples=["rex"])


class FilterSpecification(BaseModel):
    """A flat group of filter conditions combined by one logical operator."""

    model_config = _REQUEST_CONFIG

    entries: list[FilterCondition] = Field(default_factory=list)
    logical_operator: LogicalOperator = LogicalOperator.AND


class SortEntry(BaseModel):
    """One step of an ordering chain."""

    model_config = _REQUEST_CONFIG

    field_path: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("field_path", "fieldPath", "field", "key"),
        examples=["createdAt"],
    )
    direction: SortDirection = SortDirection.ASCENDING


class PaginationWindow(BaseModel):
    """
    Page number and page size describing a slice of an ordered result.

    Bounds are checked by the query builder so that out-of-range values
    surface as the query layer's ValidationError.
    """

    model_config = _REQUEST_CONFIG

    page_number: int | None = Field(
        default=None,
        validation_alias=AliasChoices("page_number", "pageNumber", "number"),
        examples=[1],
    )
    page_size: int | None = Field(
        default=None,
        validation_alias=AliasChoices("page_size", "pageSize", "size"),
        examples=[10],
    )

    @property
    def is_empty(self) -> bool:
        return self.page_number is None and self.page_size is None


class SearchRequest(BaseModel):
    """Filter, sorting and pagination of a list request."""

    model_config = _REQUEST_CONFIG

    filter: FilterSpecification | None = None
    sorting: list[SortEntry] = Field(default_factory=list)
    pagination: PaginationWindow | None = None


T = TypeVar("T")


class PagedResult(BaseModel, Generic[T]):
    """One page of results plus the total number of matching rows."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[T]
    total_count: int
    page_number: int
    page_size: int

    @computed_field
    @property
    def total_pages(self) -> int:
        if self.total_count == 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @computed_field
    @property
    def has_previous(self) -> bool:
        return self.page_number > 1
