"""
Soft-delete lifecycle for entities mixing in ``SoftDeleteMixin``.

Deletion flips a flag and stamps who and when instead of removing the row;
``exclude_deleted`` hides flagged rows from queries and ``restore`` brings
them back. Mutations flush inside the caller's transaction; committing is
left to the session scope.

All database functions are async - use AsyncSession from SQLAlchemy.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Select, delete, false, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from querykit.core.errors import ConfigurationError
from querykit.core.observability import metrics
from querykit.db.mixins import SOFT_DELETE_COLUMNS, SoftDeletable, is_soft_deletable
from querykit.repos.common import entity_label, primary_key_column, store_call
from querykit.repos.query_builder import QueryBuilder

logger = logging.getLogger(__name__)

__all__ = [
    "count_deleted",
    "count_not_deleted",
    "exclude_deleted",
    "exists_not_deleted",
    "find_by_id",
    "only_deleted",
    "purge_deleted_before",
    "restore",
    "soft_delete",
]


def _require_soft_deletable(model: Any) -> type:
    if not is_soft_deletable(model):
        raise ConfigurationError(
            f"'{entity_label(model)}' does not support soft delete",
            details={"entity": entity_label(model), "required": list(SOFT_DELETE_COLUMNS)},
        )
    return model


def _source_statement(source: type | Select[Any]) -> tuple[Select[Any], type]:
    if isinstance(source, Select):
        descriptions = source.column_descriptions
        model = descriptions[0].get("entity") if descriptions else None
        if model is None:
            raise ConfigurationError(
                "Soft-delete filters need a statement that selects a mapped entity"
            )
        return source, _require_soft_deletable(model)
    return select(source), _require_soft_deletable(source)


def exclude_deleted(source: type | Select[Any]) -> Select[Any]:
    """
    Narrow a statement (or a fresh select of a model) to live rows.

    Usable directly as ``QueryBuilder.apply_predicate(exclude_deleted)``.

    Raises:
        ConfigurationError: If the entity lacks the soft-delete columns
    """
    stmt, model = _source_statement(source)
    return stmt.where(model.is_deleted == false())


def only_deleted(source: type | Select[Any]) -> Select[Any]:
    """Narrow a statement (or a fresh select of a model) to soft-deleted rows."""
    stmt, model = _source_statement(source)
    return stmt.where(model.is_deleted == true())


def _record(model: type, action: str, result: str) -> None:
    metrics.soft_delete_operations_total.labels(
        entity=entity_label(model), action=action, result=result
    ).inc()


async def soft_delete(
    db: AsyncSession,
    model: type,
    entity_id: Any,
    actor: Any = None,
) -> bool:
    """
    Flag an entity as deleted.

    Deleting an already-deleted entity keeps its original stamp.

    Args:
        db: Async database session
        model: Soft-deletable entity class
        entity_id: Primary key value
        actor: Who deleted it; stored as text

    Returns:
        True if the entity exists (now or already deleted), False otherwise

    Raises:
        ConfigurationError: If the entity lacks the soft-delete columns
        StoreError: If the database fails
    """
    _require_soft_deletable(model)
    name = entity_label(model)

    async with store_call("soft_delete", name):
        instance: SoftDeletable | None = await db.get(model, entity_id)
        if instance is None:
            _record(model, "delete", "not_found")
            logger.info(f"{name} not found for soft delete", extra={"entity_id": str(entity_id)})
            return False

        if instance.is_deleted:
            _record(model, "delete", "already_deleted")
            logger.debug(f"{name} already soft-deleted", extra={"entity_id": str(entity_id)})
            return True

        instance.is_deleted = True
        instance.deleted_at = datetime.now(UTC)
        instance.deleted_by = str(actor) if actor is not None else None
        await db.flush()

    _record(model, "delete", "deleted")
    logger.info(
        f"{name} soft-deleted",
        extra={"entity_id": str(entity_id), "actor": instance.deleted_by},
    )
    return True


async def restore(db: AsyncSession, model: type, entity_id: Any) -> bool:
    """
    Clear the deletion flag and stamp of an entity.

    Returns:
        True if the entity exists (deleted or not), False otherwise

    Raises:
        ConfigurationError: If the entity lacks the soft-delete columns
        StoreError: If the database fails
    """
    _require_soft_deletable(model)
    name = entity_label(model)

    async with store_call("restore", name):
        instance: SoftDeletable | None = await db.get(model, entity_id)
        if instance is None:
            _record(model, "restore", "not_found")
            logger.info(f"{name} not found for restore", extra={"entity_id": str(entity_id)})
            return False

        was_deleted = instance.is_deleted
        instance.is_deleted = False
        instance.deleted_at = None
        instance.deleted_by = None
        await db.flush()

    _record(model, "restore", "restored" if was_deleted else "not_deleted")
    logger.info(f"{name} restored", extra={"entity_id": str(entity_id)})
    return True


async def find_by_id(
    db: AsyncSession,
    model: type,
    entity_id: Any,
    include_deleted: bool = False,
) -> Any | None:
    """Load an entity by primary key; soft-deleted rows only when ``include_deleted``."""
    _require_soft_deletable(model)
    async with store_call("find_by_id", entity_label(model)):
        instance = await db.get(model, entity_id)
    if instance is None:
        return None
    if instance.is_deleted and not include_deleted:
        return None
    return instance


async def exists_not_deleted(db: AsyncSession, model: type, entity_id: Any) -> bool:
    """Whether a live (not soft-deleted) entity with this primary key exists."""
    _require_soft_deletable(model)
    return await (
        QueryBuilder(db, model)
        .apply_predicate(exclude_deleted)
        .where(primary_key_column(model) == entity_id)
        .any()
    )


async def count_not_deleted(db: AsyncSession, model: type, *criteria: Any) -> int:
    """Number of live rows, optionally narrowed by extra criteria."""
    return await QueryBuilder(db, model).apply_predicate(exclude_deleted).where(*criteria).count()


async def count_deleted(db: AsyncSession, model: type, *criteria: Any) -> int:
    """Number of soft-deleted rows, optionally narrowed by extra criteria."""
    return await QueryBuilder(db, model).apply_predicate(only_deleted).where(*criteria).count()


async def purge_deleted_before(db: AsyncSession, model: type, before: datetime) -> int:
    """
    Permanently delete rows soft-deleted before ``before``.

    Foreign keys pointing at purged rows are the caller's concern. Instances of
    purged rows already loaded in the session are not synchronised.

    Returns:
        Number of rows removed
    """
    _require_soft_deletable(model)
    name = entity_label(model)
    if before.tzinfo is None:
        before = before.replace(tzinfo=UTC)

    stmt = (
        delete(model)
        .where(model.is_deleted == true(), model.deleted_at < before)
        .execution_options(synchronize_session=False)
    )
    async with store_call("purge_deleted_before", name):
        result = await db.execute(stmt)
        await db.flush()

    purged = result.rowcount or 0
    _record(model, "purge", "purged" if purged else "none")
    logger.info(
        f"Purged {purged} soft-deleted {name} rows",
        extra={"before": before.isoformat(), "purged": purged},
    )
    return purged
