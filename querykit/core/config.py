"""Query layer configuration using Pydantic Settings.

Settings are read from environment variables prefixed with ``QUERYKIT_``.

Optionally, point ``ENV_FILE`` at a local env file (for development); it is
only read when explicitly set.
"""

import logging
import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from querykit.domain.enums import SortDirection


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Query layer settings with type validation.

    Defaults are tuned for list endpoints of a typical admin/public API:
    ten rows per page, newest first, case-insensitive text search.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="QUERYKIT_", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "querykit"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True

    # Database
    database_url: str = "sqlite+aiosqlite:///:memory:"
    database_echo: bool = False

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # Sorting fallback when a request carries no sort entries
    default_sort_field: str = "createdAt"
    default_sort_direction: SortDirection = SortDirection.DESCENDING

    # CONTAINS / STARTS_WITH / ENDS_WITH compare lower-cased text unless enabled
    case_sensitive_text_match: bool = False

    # Upper bound for a single database round-trip; None disables the limit
    query_timeout_seconds: float | None = 30.0

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("app_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level and reject names logging does not know."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"app_log_level must be a standard logging level, got '{v}'")
        return level

    @field_validator("default_page_size", "max_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """Page sizes must be positive."""
        if v < 1:
            raise ValueError(f"page sizes must be >= 1, got {v}")
        return v

    @field_validator("query_timeout_seconds")
    @classmethod
    def validate_query_timeout(cls, v: float | None) -> float | None:
        """A timeout, when set, must be positive."""
        if v is not None and v <= 0:
            raise ValueError(f"query_timeout_seconds must be > 0 or unset, got {v}")
        return v

    @model_validator(mode="after")
    def validate_page_size_bounds(self) -> "Settings":
        """The default page must fit inside the maximum page."""
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) cannot exceed "
                f"max_page_size ({self.max_page_size})"
            )
        return self


settings = Settings()
