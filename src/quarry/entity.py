"""Entity declarations.

Entities are plain classes whose columns and relations are declared as class
attributes. The declarations are collected once, when the class is defined,
into an immutable EntityDescriptor shared by every query on that entity.

Example:
    class User(Entity):
        __table__ = "users"

        id = column(primary_key=True)
        name = column()
        is_active = column(boolean=True)
        posts = has_many(lambda: Post, "user_id")

    class Post(Entity):
        __table__ = "posts"

        id = column(primary_key=True)
        user_id = column()
        author = belongs_to(lambda: User, "user_id")
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Literal

from quarry.case import CaseConvention, convert_case
from quarry.errors import ConfigurationError, MissingPrimaryKeyError, UnknownRelationError


class RelationKind(str, Enum):
    """Relation kinds between two entities."""

    BELONGS_TO = "belongsTo"  # owner row holds the foreign key
    HAS_ONE = "hasOne"  # related row holds the foreign key, single match
    HAS_MANY = "hasMany"  # related rows hold the foreign key


# =============================================================================
# Declarations (class attributes)
# =============================================================================


class Column:
    """Declared column. Reading it on an instance returns the value or None."""

    def __init__(self, primary_key: bool = False, boolean: bool = False):
        self.primary_key = primary_key
        self.boolean = boolean
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.name] = value

    def __repr__(self) -> str:
        return f"Column({self.name!r}, primary_key={self.primary_key}, boolean={self.boolean})"


class Relation:
    """Declared relation. Reading it on an instance returns the hydrated data."""

    def __init__(
        self,
        kind: RelationKind,
        target: Callable[[], type[Entity]] | type[Entity],
        foreign_key: str,
        soft_delete_column: str | None = None,
        soft_delete_type: Literal["date", "boolean"] = "date",
    ):
        self.kind = kind
        self.target = target
        self.foreign_key = foreign_key
        self.soft_delete_column = soft_delete_column
        self.soft_delete_type = soft_delete_type
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.name] = value

    def resolve_target(self) -> type[Entity]:
        """Return the related entity class, calling the factory if needed."""
        if isinstance(self.target, type):
            return self.target
        return self.target()


def column(*, primary_key: bool = False, boolean: bool = False) -> Any:
    """Declare a column on an entity."""
    return Column(primary_key=primary_key, boolean=boolean)


def belongs_to(
    target: Callable[[], type[Entity]] | type[Entity],
    foreign_key: str,
    *,
    soft_delete_column: str | None = None,
    soft_delete_type: Literal["date", "boolean"] = "date",
) -> Any:
    """Declare a relation where this entity holds the foreign key."""
    return Relation(RelationKind.BELONGS_TO, target, foreign_key, soft_delete_column, soft_delete_type)


def has_one(
    target: Callable[[], type[Entity]] | type[Entity],
    foreign_key: str,
    *,
    soft_delete_column: str | None = None,
    soft_delete_type: Literal["date", "boolean"] = "date",
) -> Any:
    """Declare a relation where one related row points back at this entity."""
    return Relation(RelationKind.HAS_ONE, target, foreign_key, soft_delete_column, soft_delete_type)


def has_many(
    target: Callable[[], type[Entity]] | type[Entity],
    foreign_key: str,
    *,
    soft_delete_column: str | None = None,
    soft_delete_type: Literal["date", "boolean"] = "date",
) -> Any:
    """Declare a relation where many related rows point back at this entity."""
    return Relation(RelationKind.HAS_MANY, target, foreign_key, soft_delete_column, soft_delete_type)


def dynamic_column(name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a method as a column computed at read time.

    The method is called (and awaited if it is a coroutine function) on each
    fetched entity when the query asks for the column by name.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        fn.__quarry_dynamic_column__ = name  # type: ignore[attr-defined]
        return fn

    return decorator


# =============================================================================
# Descriptors (immutable metadata)
# =============================================================================


@dataclass(frozen=True)
class RelationDescriptor:
    """Relation metadata shared by all queries of the owning entity."""

    name: str
    kind: RelationKind
    foreign_key: str
    owner: EntityDescriptor = field(repr=False, compare=False)
    soft_delete_column: str | None = None
    soft_delete_type: Literal["date", "boolean"] = "date"
    _target: Callable[[], type[Entity]] | type[Entity] | None = field(default=None, repr=False, compare=False)

    @property
    def related(self) -> EntityDescriptor:
        """Descriptor of the related entity, resolved on first use."""
        if self._target is None:
            raise ConfigurationError(f"Relation {self.name!r} has no target entity")
        target = self._target if isinstance(self._target, type) else self._target()
        descriptor = getattr(target, "__descriptor__", None)
        if descriptor is None:
            raise ConfigurationError(f"Relation {self.name!r} points at {target!r}, which is not an entity")
        return descriptor


@dataclass(frozen=True)
class EntityDescriptor:
    """Table-level metadata of one entity class."""

    entity: type[Entity] = field(repr=False)
    table: str
    primary_key: str | None
    columns: tuple[str, ...]
    boolean_columns: frozenset[str]
    dynamic_columns: Mapping[str, str]
    relations: Mapping[str, RelationDescriptor] = field(repr=False)
    model_case: CaseConvention = "snake"
    database_case: CaseConvention = "snake"

    @property
    def name(self) -> str:
        return self.entity.__name__

    def storage_name(self, attribute: str) -> str:
        """Column name in storage case for an entity-case attribute."""
        return convert_case(attribute, self.database_case)

    def entity_name(self, storage_key: str) -> str:
        """Entity-case name for a storage-case column key."""
        return convert_case(storage_key, self.model_case)

    def relation(self, name: str) -> RelationDescriptor:
        """Look up a declared relation.

        Raises:
            UnknownRelationError: If the entity does not declare it
        """
        try:
            return self.relations[name]
        except KeyError:
            raise UnknownRelationError(self.name, name, list(self.relations)) from None

    def require_primary_key(self, operation: str) -> str:
        """Return the primary key or raise MissingPrimaryKeyError."""
        if self.primary_key is None:
            raise MissingPrimaryKeyError(self.name, operation)
        return self.primary_key


def _build_descriptor(entity: type[Entity]) -> EntityDescriptor:
    columns: dict[str, Column] = {}
    relations: dict[str, Relation] = {}
    dynamic: dict[str, str] = {}

    # Walk bases first so subclasses can override declarations
    for klass in reversed(entity.__mro__):
        for attr, value in vars(klass).items():
            if isinstance(value, Column):
                columns[attr] = value
            elif isinstance(value, Relation):
                relations[attr] = value
            elif inspect.isfunction(value) and hasattr(value, "__quarry_dynamic_column__"):
                dynamic[value.__quarry_dynamic_column__] = attr

    primary_keys = [name for name, col in columns.items() if col.primary_key]
    if len(primary_keys) > 1:
        raise ConfigurationError(f"{entity.__name__} declares multiple primary keys: {primary_keys}")

    relation_map: dict[str, RelationDescriptor] = {}
    descriptor = EntityDescriptor(
        entity=entity,
        table=entity.__table__,
        primary_key=primary_keys[0] if primary_keys else None,
        columns=tuple(columns),
        boolean_columns=frozenset(name for name, col in columns.items() if col.boolean),
        dynamic_columns=MappingProxyType(dynamic),
        relations=MappingProxyType(relation_map),
        model_case=entity.model_case_convention,
        database_case=entity.database_case_convention,
    )
    for name, rel in relations.items():
        relation_map[name] = RelationDescriptor(
            name=name,
            kind=rel.kind,
            foreign_key=rel.foreign_key,
            owner=descriptor,
            soft_delete_column=rel.soft_delete_column,
            soft_delete_type=rel.soft_delete_type,
            _target=rel.target,
        )
    return descriptor


# =============================================================================
# Entity base class
# =============================================================================


class Entity:
    """Base class for entities.

    Subclasses set __table__ and declare columns with column(), relations with
    belongs_to()/has_one()/has_many(). Classes without __table__ are treated as
    abstract mixins and get no descriptor.
    """

    __table__: ClassVar[str]
    __descriptor__: ClassVar[EntityDescriptor]

    # Case of attribute names on the entity and of column names in the database
    model_case_convention: ClassVar[CaseConvention] = "snake"
    database_case_convention: ClassVar[CaseConvention] = "snake"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "__table__" in cls.__dict__:
            cls.__descriptor__ = _build_descriptor(cls)

    def __init__(self, **values: Any):
        self.extra_columns: dict[str, Any] = {}
        descriptor = type(self).__descriptor__
        for name, value in values.items():
            if name in descriptor.columns or name in descriptor.relations:
                setattr(self, name, value)
            else:
                self.extra_columns[name] = value

    # =========================================================================
    # Fetch hooks
    # =========================================================================

    @classmethod
    def before_fetch(cls, query: Any) -> Any:
        """Called with the query right before it runs. May return an awaitable."""
        return None

    @classmethod
    def after_fetch(cls, entities: list[Any]) -> Any:
        """Called with fetched entities; return the list to hand back to the caller."""
        return entities

    # =========================================================================
    # Introspection
    # =========================================================================

    def column_values(self, include_none: bool = False) -> dict[str, Any]:
        """Declared column values keyed by entity-case name."""
        descriptor = type(self).__descriptor__
        values = {name: self.__dict__.get(name) for name in descriptor.columns if name in self.__dict__}
        if include_none:
            return values
        return {name: value for name, value in values.items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        """Public mapping of the entity, including loaded relations."""
        descriptor = type(self).__descriptor__
        data: dict[str, Any] = {name: self.__dict__.get(name) for name in descriptor.columns}

        for name in descriptor.relations:
            if name not in self.__dict__:
                continue
            value = self.__dict__[name]
            if isinstance(value, list):
                data[name] = [item.to_dict() for item in value]
            elif isinstance(value, Entity):
                data[name] = value.to_dict()
            else:
                data[name] = value

        for name in descriptor.dynamic_columns:
            if name in self.__dict__:
                data[name] = self.__dict__[name]

        if self.extra_columns:
            data["extra_columns"] = dict(self.extra_columns)
        return data

    def __repr__(self) -> str:
        descriptor = type(self).__descriptor__
        fields = ", ".join(f"{name}={self.__dict__.get(name)!r}" for name in descriptor.columns)
        return f"<{type(self).__name__} {fields}>"
