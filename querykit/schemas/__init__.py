"""
Pydantic schemas for search requests and paged responses.
"""

# Re-export schemas for convenient imports.
from .search import FilterCondition as FilterCondition
from .search import FilterSpecification as FilterSpecification
from .search import PagedResult as PagedResult
from .search import PaginationWindow as PaginationWindow
from .search import SearchRequest as SearchRequest
from .search import SortEntry as SortEntry
