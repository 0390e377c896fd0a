"""Row to entity conversion."""

import inspect
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from quarry.case import CaseConvention, convert_case
from quarry.entity import Entity, EntityDescriptor
from quarry.errors import ConfigurationError

E = TypeVar("E", bound=Entity)

_TRUE_VALUES = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_VALUES = frozenset({"0", "false", "f", "no", "n", "off", ""})


def coerce_bool(value: Any) -> bool | None:
    """Coerce a driver's boolean representation to bool.

    Handles native bool, 0/1 integers, "true"/"false", "t"/"f", "yes"/"no",
    "1"/"0" and single-byte values (MySQL BIT(1)). None stays None.
    """
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) == 1:
            return raw not in (b"\x00", b"0")
        return coerce_bool(raw.decode("utf-8", errors="ignore"))
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return bool(value)


def convert_keys(value: Any, convention: CaseConvention) -> Any:
    """Recursively convert the keys of plain nested dicts.

    Lists, dates and every other value pass through untouched.
    """
    if isinstance(value, dict):
        return {
            convert_case(key, convention) if isinstance(key, str) else key: convert_keys(item, convention)
            for key, item in value.items()
        }
    return value


class EntitySerializer:
    """Build entities from raw rows.

    Example:
        serializer = EntitySerializer()
        user = serializer.serialize(User.__descriptor__, {"id": 1, "is_active": 1})
        user.is_active  # True
    """

    def serialize(
        self,
        descriptor: EntityDescriptor,
        row: Mapping[str, Any],
        relations: Mapping[str, Any] | None = None,
    ) -> Any:
        """Convert one raw row into an entity.

        Args:
            descriptor: Descriptor of the target entity
            row: Raw row with storage-case keys
            relations: Already serialized relation data keyed by relation name

        Returns:
            A fresh entity instance
        """
        entity = descriptor.entity.__new__(descriptor.entity)
        entity.extra_columns = {}
        values = entity.__dict__

        for key, raw in row.items():
            name = descriptor.entity_name(key)
            value = convert_keys(raw, descriptor.model_case)
            if name in descriptor.columns:
                if name in descriptor.boolean_columns:
                    value = coerce_bool(value)
                values[name] = value
            else:
                entity.extra_columns[name] = value

        for name, data in (relations or {}).items():
            values[name] = data
        return entity

    def serialize_many(
        self,
        descriptor: EntityDescriptor,
        rows: Iterable[Mapping[str, Any]],
    ) -> list[Any]:
        return [self.serialize(descriptor, row) for row in rows]

    async def apply_dynamic_columns(
        self,
        descriptor: EntityDescriptor,
        entities: list[E],
        names: Iterable[str],
    ) -> list[E]:
        """Evaluate dynamic columns on each entity and store the results.

        Raises:
            ConfigurationError: If a name is not a declared dynamic column
        """
        methods: list[tuple[str, str]] = []
        for name in names:
            if name not in descriptor.dynamic_columns:
                raise ConfigurationError(
                    f"{descriptor.name} has no dynamic column {name!r}. "
                    f"Available dynamic columns: {list(descriptor.dynamic_columns)}"
                )
            methods.append((name, descriptor.dynamic_columns[name]))

        for entity in entities:
            for name, method_name in methods:
                result = getattr(entity, method_name)()
                if inspect.isawaitable(result):
                    result = await result
                entity.__dict__[name] = result
        return entities
