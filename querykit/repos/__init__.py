"""
Repository layer: the query-builder pipeline and soft-delete lifecycle.

This package contains the modules that issue database round-trips on
behalf of list/search endpoints.
"""
