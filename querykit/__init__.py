"""
querykit: filtering, sorting, pagination and soft delete for SQLAlchemy entities.

Typical list endpoint:

    from querykit import QueryBuilder, SearchRequest, exclude_deleted

    async def list_pets(db, request: SearchRequest):
        return await (
            QueryBuilder(db, Pet)
            .apply_predicate(exclude_deleted)
            .apply_filters(request.filter)
            .apply_sorting(request.sorting, default_key="createdAt")
            .to_page(request.pagination)
        )
"""

from querykit.core.errors import ConfigurationError as ConfigurationError
from querykit.core.errors import QueryKitError as QueryKitError
from querykit.core.errors import StoreError as StoreError
from querykit.core.errors import UnsupportedOperatorError as UnsupportedOperatorError
from querykit.core.errors import ValidationError as ValidationError
from querykit.db.mixins import SoftDeletable as SoftDeletable
from querykit.db.mixins import SoftDeleteMixin as SoftDeleteMixin
from querykit.domain.enums import FilterOperator as FilterOperator
from querykit.domain.enums import LogicalOperator as LogicalOperator
from querykit.domain.enums import SortDirection as SortDirection
from querykit.filtering.field_paths import register_field_alias as register_field_alias
from querykit.filtering.field_paths import resolve_field_path as resolve_field_path
from querykit.filtering.predicates import PredicateBuilder as PredicateBuilder
from querykit.filtering.predicates import build_predicate as build_predicate
from querykit.repos.query_builder import QueryBuilder as QueryBuilder
from querykit.repos.soft_delete import exclude_deleted as exclude_deleted
from querykit.repos.soft_delete import only_deleted as only_deleted
from querykit.repos.soft_delete import restore as restore
from querykit.repos.soft_delete import soft_delete as soft_delete
from querykit.schemas import FilterCondition as FilterCondition
from querykit.schemas import FilterSpecification as FilterSpecification
from querykit.schemas import PagedResult as PagedResult
from querykit.schemas import PaginationWindow as PaginationWindow
from querykit.schemas import SearchRequest as SearchRequest
from querykit.schemas import SortEntry as SortEntry

__version__ = "0.1.0"
