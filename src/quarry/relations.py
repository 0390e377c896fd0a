"""Batched relation loading.

Each requested relation costs one extra query, whatever the number of parent
entities: the keys of every parent are collected into a single IN lookup and
the results are grouped by join key before they are attached.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from quarry.entity import Entity, EntityDescriptor, RelationDescriptor, RelationKind

if TYPE_CHECKING:
    from quarry.query.composer import QueryComposer

logger = logging.getLogger(__name__)

QueryFactory = Callable[[type[Entity]], "QueryComposer"]


def entity_value(entity: Entity, attribute: str) -> Any:
    """Read a column value, falling back to extra columns for undeclared keys."""
    if attribute in entity.__dict__:
        return entity.__dict__[attribute]
    return entity.extra_columns.get(attribute)


@dataclass
class ResolvedRelation:
    """Related entities of one relation, grouped by join key."""

    relation: RelationDescriptor
    groups: dict[Any, Any] = field(default_factory=dict)

    def parent_key(self, parent: Entity) -> Any:
        if self.relation.kind is RelationKind.BELONGS_TO:
            return entity_value(parent, self.relation.foreign_key)
        return entity_value(parent, self.relation.owner.primary_key or "")

    def for_parent(self, parent: Entity) -> Any:
        """Relation data for one parent: an entity, a list, or None."""
        key = self.parent_key(parent)
        if self.relation.kind is RelationKind.HAS_MANY:
            return list(self.groups.get(key, [])) if key is not None else []
        if key is None:
            return None
        return self.groups.get(key)


class RelationResolver:
    """Load declared relations for a batch of already fetched entities."""

    def __init__(self, query_factory: QueryFactory, concurrent: bool = True):
        """Initialize the resolver.

        Args:
            query_factory: Returns a fresh query for an entity class, bound to
                the same driver or transaction as the parent query
            concurrent: Run the lookups of different relations at the same
                time. Only safe when each statement gets its own pooled
                connection.
        """
        self.query_factory = query_factory
        self.concurrent = concurrent

    def validate(self, descriptor: EntityDescriptor, names: Iterable[str]) -> list[RelationDescriptor]:
        """Check every requested relation before any query runs.

        Raises:
            UnknownRelationError: If a name is not declared on the entity
            MissingPrimaryKeyError: If the owner (or, for belongsTo, the
                related entity) declares no primary key
        """
        relations = [descriptor.relation(name) for name in names]
        if relations:
            descriptor.require_primary_key("relation loading")
        for relation in relations:
            if relation.kind is RelationKind.BELONGS_TO:
                relation.related.require_primary_key(f"belongsTo relation {relation.name!r}")
        return relations

    async def resolve(
        self,
        descriptor: EntityDescriptor,
        parents: Sequence[Entity],
        names: Iterable[str],
    ) -> dict[str, ResolvedRelation]:
        """Run one lookup per relation, concurrently when allowed.

        Returns:
            ResolvedRelation per relation name
        """
        relations = self.validate(descriptor, names)
        if not relations:
            return {}

        if self.concurrent:
            resolved = await asyncio.gather(*(self._load(relation, parents) for relation in relations))
        else:
            # One connection: statements must not overlap
            resolved = [await self._load(relation, parents) for relation in relations]
        return {item.relation.name: item for item in resolved}

    async def attach(
        self,
        descriptor: EntityDescriptor,
        parents: Sequence[Entity],
        names: Iterable[str],
    ) -> None:
        """Resolve relations and store them on each parent entity."""
        resolved = await self.resolve(descriptor, parents, names)
        for parent in parents:
            for name, relation in resolved.items():
                parent.__dict__[name] = relation.for_parent(parent)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _load(self, relation: RelationDescriptor, parents: Sequence[Entity]) -> ResolvedRelation:
        resolved = ResolvedRelation(relation)
        keys = _distinct(resolved.parent_key(parent) for parent in parents)
        if not keys:
            logger.debug(f"Skipping lookup for relation {relation.name!r}: no keys")
            return resolved

        related = relation.related
        if relation.kind is RelationKind.BELONGS_TO:
            match_column = related.require_primary_key(f"belongsTo relation {relation.name!r}")
        else:
            match_column = relation.foreign_key

        query = self.query_factory(related.entity).where_in(match_column, keys)
        if relation.soft_delete_column:
            if relation.soft_delete_type == "boolean":
                query.where(relation.soft_delete_column, False)
            else:
                query.where_null(relation.soft_delete_column)

        children = await query.many()

        for child in children:
            key = entity_value(child, match_column)
            if relation.kind is RelationKind.HAS_MANY:
                resolved.groups.setdefault(key, []).append(child)
            else:
                # First match wins for hasOne
                resolved.groups.setdefault(key, child)
        return resolved


def _distinct(values: Iterable[Any]) -> list[Any]:
    """Non-null values in first-seen order."""
    seen: dict[Any, None] = {}
    for value in values:
        if value is not None:
            seen.setdefault(value, None)
    return list(seen)
