"""
Declarative mixins for entities managed by the query layer.

Mix ``SoftDeleteMixin`` into a declarative class to make it soft-deletable:

    class Pet(SoftDeleteMixin, Base):
        __tablename__ = "pets"
        ...
"""

from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import Boolean, DateTime, Text, false
from sqlalchemy.orm import Mapped, mapped_column

SOFT_DELETE_COLUMNS = ("is_deleted", "deleted_at", "deleted_by")


class SoftDeleteMixin:
    """Adds the deletion flag and stamp columns."""

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(), index=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    def mark_deleted(self, actor: Any = None, at: datetime | None = None) -> None:
        """Flag the entity as deleted and stamp who and when."""
        self.is_deleted = True
        self.deleted_at = at or datetime.now(UTC)
        self.deleted_by = str(actor) if actor is not None else None

    def mark_restored(self) -> None:
        """Clear the deletion flag and stamp."""
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None


@runtime_checkable
class SoftDeletable(Protocol):
    """Structural type of an entity carrying the soft-delete columns."""

    is_deleted: bool
    deleted_at: datetime | None
    deleted_by: str | None


def is_soft_deletable(model: Any) -> bool:
    """True if a mapped class (or instance) exposes all soft-delete columns."""
    return all(hasattr(model, column) for column in SOFT_DELETE_COLUMNS)
