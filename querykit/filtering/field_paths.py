"""
Field-path resolution against SQLAlchemy mapped entities.

A ``FieldRegistry`` is built once per entity type from its mapper. It maps
client-facing member names to typed member descriptors and keeps one
``ResolvedPath`` per distinct member chain. The cache is keyed on the
members a path resolves to, not on the client spelling, so ``"createdAt"``,
``"created_at"`` and ``"CREATEDAT"`` share a single entry.

Resolution of a segment tries, in order:
1. an explicit alias registered with ``register_field_alias``
2. the attribute name as given
3. the camelCase -> snake_case conversion of the segment
4. a case- and underscore-insensitive match
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper
from sqlalchemy.sql import sqltypes

from querykit.core.errors import ConfigurationError
from querykit.domain.enums import MemberKind
from querykit.filtering.naming import camel_to_snake, split_field_path, squash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnMember:
    """A mapped column attribute with the metadata needed for coercion."""

    name: str
    owner: type
    attribute: Any
    kind: MemberKind
    nullable: bool
    python_type: type | None = None
    timezone: bool = False
    enum_class: type[Enum] | None = None
    enum_values: tuple[str, ...] = ()

    @property
    def is_text(self) -> bool:
        return self.kind is MemberKind.TEXT


@dataclass(frozen=True)
class RelationshipMember:
    """A mapped relationship attribute (navigation to another entity)."""

    name: str
    owner: type
    attribute: Any
    target: type
    uselist: bool


Member = ColumnMember | RelationshipMember


@dataclass(frozen=True)
class ResolvedPath:
    """A field path resolved to the chain of members it walks through."""

    path: str
    entity: type
    steps: tuple[Member, ...]

    @property
    def leaf(self) -> Member:
        return self.steps[-1]

    @property
    def column(self) -> ColumnMember | None:
        """The terminal column, or None when the path ends on a relationship."""
        leaf = self.leaf
        return leaf if isinstance(leaf, ColumnMember) else None

    @property
    def navigations(self) -> tuple[RelationshipMember, ...]:
        """Relationships walked before the leaf column (all steps for relationship paths)."""
        if self.column is None:
            return self.steps  # type: ignore[return-value]
        return self.steps[:-1]  # type: ignore[return-value]

    @property
    def is_nested(self) -> bool:
        return len(self.steps) > 1


def _member_kind(column_type: Any) -> MemberKind:
    # Enum subclasses String and must be checked first
    if isinstance(column_type, sqltypes.Enum):
        return MemberKind.ENUM
    if isinstance(column_type, sqltypes.Boolean):
        return MemberKind.BOOLEAN
    if isinstance(column_type, sqltypes.String):
        return MemberKind.TEXT
    if isinstance(column_type, sqltypes.Uuid):
        return MemberKind.UUID
    if isinstance(column_type, sqltypes.Integer):
        return MemberKind.INTEGER
    if isinstance(column_type, sqltypes.Float):
        return MemberKind.FLOAT
    if isinstance(column_type, sqltypes.Numeric):
        return MemberKind.DECIMAL if column_type.asdecimal else MemberKind.FLOAT
    if isinstance(column_type, sqltypes.DateTime):
        return MemberKind.DATETIME
    if isinstance(column_type, sqltypes.Date):
        return MemberKind.DATE
    if isinstance(column_type, sqltypes.Time):
        return MemberKind.TIME
    return MemberKind.OTHER


def _python_type(column_type: Any) -> type | None:
    try:
        return column_type.python_type
    except NotImplementedError:
        return None


def _column_member(model: type, key: str, column: Any) -> ColumnMember:
    column_type = column.type
    kind = _member_kind(column_type)
    enum_class = getattr(column_type, "enum_class", None) if kind is MemberKind.ENUM else None
    enum_values = tuple(getattr(column_type, "enums", ())) if kind is MemberKind.ENUM else ()
    return ColumnMember(
        name=key,
        owner=model,
        attribute=getattr(model, key),
        kind=kind,
        nullable=bool(getattr(column, "nullable", True)),
        python_type=_python_type(column_type),
        timezone=bool(getattr(column_type, "timezone", False)),
        enum_class=enum_class,
        enum_values=enum_values,
    )


class FieldRegistry:
    """Member descriptors and resolved-path cache for one mapped entity type."""

    def __init__(self, model: type):
        mapper = sa_inspect(model, raiseerr=False)
        if not isinstance(mapper, Mapper):
            raise ConfigurationError(
                f"'{getattr(model, '__name__', model)}' is not a mapped entity",
                details={"entity": getattr(model, "__name__", repr(model))},
            )

        self.model = model
        self.members: dict[str, Member] = {}

        for prop in mapper.column_attrs:
            self.members[prop.key] = _column_member(model, prop.key, prop.columns[0])
        for rel in mapper.relationships:
            self.members[rel.key] = RelationshipMember(
                name=rel.key,
                owner=model,
                attribute=getattr(model, rel.key),
                target=rel.mapper.class_,
                uselist=bool(rel.uselist),
            )

        self._squashed = {squash(name): name for name in self.members}
        self._aliases: dict[str, str] = {}
        self._paths: dict[tuple[str, ...], ResolvedPath] = {}

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def add_alias(self, external_name: str, attribute: str) -> None:
        """Expose ``attribute`` under an additional client-facing name."""
        if attribute not in self.members:
            raise ConfigurationError(
                f"Cannot alias '{external_name}': '{self.entity_name}' has no member '{attribute}'",
                details={"entity": self.entity_name, "field": attribute},
            )
        self._aliases[external_name] = attribute
        self.clear_resolved_paths()

    def lookup(self, segment: str) -> Member | None:
        """Find the member a single path segment refers to."""
        if segment in self._aliases:
            return self.members[self._aliases[segment]]
        if segment in self.members:
            return self.members[segment]
        snake = camel_to_snake(segment)
        if snake in self.members:
            return self.members[snake]
        name = self._squashed.get(squash(segment))
        return self.members[name] if name is not None else None

    def resolve(self, path: str) -> ResolvedPath:
        """
        Resolve a (possibly nested) field path.

        Raises:
            ConfigurationError: If any segment does not resolve, or a column
                appears before the last segment
        """
        segments = split_field_path(path)
        steps: list[Member] = []
        registry: FieldRegistry = self

        for index, segment in enumerate(segments):
            member = registry.lookup(segment)
            if member is None:
                raise ConfigurationError(
                    f"Field '{path}' does not exist on '{self.entity_name}'",
                    details={
                        "field": path,
                        "segment": segment,
                        "entity": registry.entity_name,
                    },
                )
            steps.append(member)

            is_last = index == len(segments) - 1
            if isinstance(member, RelationshipMember):
                if not is_last:
                    registry = get_field_registry(member.target)
            elif not is_last:
                raise ConfigurationError(
                    f"Field '{path}' navigates through '{segment}', which is not a relationship",
                    details={"field": path, "segment": segment, "entity": registry.entity_name},
                )

        key = tuple(step.name for step in steps)
        cached = self._paths.get(key)
        if cached is not None:
            return cached

        resolved = ResolvedPath(path=":".join(key), entity=self.model, steps=tuple(steps))
        self._paths[key] = resolved
        logger.debug(
            f"Resolved field path '{path}' on {self.entity_name}",
            extra={"members": list(key)},
        )
        return resolved

    def clear_resolved_paths(self) -> None:
        self._paths.clear()


_registries: dict[type, FieldRegistry] = {}


def get_field_registry(model: type) -> FieldRegistry:
    """Return the (lazily built) registry for a mapped entity type."""
    registry = _registries.get(model)
    if registry is None:
        registry = FieldRegistry(model)
        _registries[model] = registry
    return registry


def resolve_field_path(model: type, path: str) -> ResolvedPath:
    """Resolve ``path`` against ``model``; see ``FieldRegistry.resolve``."""
    return get_field_registry(model).resolve(path)


def register_field_alias(model: type, external_name: str, attribute: str) -> None:
    """Expose a model attribute under an extra client-facing name."""
    get_field_registry(model).add_alias(external_name, attribute)
    # Registries of other entities cache nested paths that walk through this one
    for registry in _registries.values():
        registry.clear_resolved_paths()


def clear_field_registries() -> None:
    """Drop all cached registries (for tests and model reloading)."""
    _registries.clear()
