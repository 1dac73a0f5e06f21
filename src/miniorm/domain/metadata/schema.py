"""Entity schema descriptors derived from dataclass metadata.

Introspection happens in two steps. ``inspect_entity`` reads type hints and
field markers once per class (cached). ``SchemaDescriptor.describe`` binds that
result to a table name and to the columns the store actually has, producing an
immutable ``EntitySchema`` that the rest of the core works against.
"""

from __future__ import annotations

import dataclasses
import logging
import types
from collections.abc import Collection, MutableSequence, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from functools import cache
from typing import TYPE_CHECKING, Any, Final, Union, get_args, get_origin, get_type_hints

from miniorm.domain.errors import MappingConfigurationError
from miniorm.domain.metadata.fields import FieldOptions, FieldRules, options_of

if TYPE_CHECKING:
    from collections.abc import Iterable

log = logging.getLogger(__name__)

ALLOWED_SCALAR_TYPES: Final[frozenset[type]] = frozenset(
    {str, int, float, bool, Decimal, date, datetime}
)

_SEQUENCE_ORIGINS: Final[frozenset[object]] = frozenset(
    {list, tuple, Sequence, MutableSequence, Collection}
)


@dataclass(frozen=True, slots=True)
class ScalarField:
    name: str
    value_type: type
    nullable: bool
    options: FieldOptions

    @property
    def rules(self) -> FieldRules:
        return self.options.rules


@dataclass(frozen=True, slots=True)
class ForeignKey:
    """A scalar field holding the key of the entity stored in ``navigation``."""

    field: str
    navigation: str
    target: type


@dataclass(frozen=True, slots=True)
class NavigationCollection:
    field: str
    element_type: type
    container: type
    through: type | None = None
    back_reference: str | None = None

    @property
    def target(self) -> type:
        """Type whose key count decides the relation kind."""
        return self.through or self.element_type


@dataclass(frozen=True, slots=True)
class EntityMetadata:
    """Type-level facts about an entity class, independent of any store."""

    entity_type: type
    table_override: str | None
    scalars: tuple[ScalarField, ...]
    key_fields: tuple[str, ...]
    foreign_keys: tuple[ForeignKey, ...]
    navigation_collections: tuple[NavigationCollection, ...]


@dataclass(frozen=True, slots=True)
class EntitySchema:
    """Table mapping of one entity type as seen by the loader, mapper and persister."""

    entity_type: type
    table_name: str
    columns: tuple[str, ...]
    key_fields: tuple[str, ...]
    foreign_keys: tuple[ForeignKey, ...]
    navigation_collections: tuple[NavigationCollection, ...]
    scalars: tuple[ScalarField, ...]

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def is_link_entity(self) -> bool:
        return len(self.key_fields) >= 2  # noqa: PLR2004

    @property
    def primary_key(self) -> str:
        """Return the single key field, or fail for keyless and composite types."""
        if len(self.key_fields) != 1:
            raise MappingConfigurationError(
                f"{self.name} needs exactly one key field, found {len(self.key_fields)}"
            )
        return self.key_fields[0]

    def scalar(self, name: str) -> ScalarField:
        for scalar in self.scalars:
            if scalar.name == name:
                return scalar
        raise KeyError(name)

    def foreign_key(self, field_name: str) -> ForeignKey | None:
        for foreign_key in self.foreign_keys:
            if foreign_key.field == field_name:
                return foreign_key
        return None

    def values_of(self, entity: object) -> dict[str, Any]:
        return {name: getattr(entity, name) for name in self.columns}

    def key_of(self, entity: object) -> dict[str, Any]:
        return {name: getattr(entity, name) for name in self.key_fields}

    def materialize(self, row: Sequence[Any]) -> Any:
        """Build an entity from a row aligned to ``columns``.

        ``__init__`` is bypassed so that required constructor arguments do not
        have to be present in the store; non-column fields get their defaults.
        """
        entity = object.__new__(self.entity_type)
        values = dict(zip(self.columns, row, strict=True))
        for dataclass_field in dataclasses.fields(self.entity_type):
            name = dataclass_field.name
            if name in values:
                value = values[name]
            elif dataclass_field.default is not dataclasses.MISSING:
                value = dataclass_field.default
            elif dataclass_field.default_factory is not dataclasses.MISSING:
                value = dataclass_field.default_factory()
            else:
                value = None
            object.__setattr__(entity, name, value)
        return entity


def _unwrap_optional(hint: Any) -> tuple[Any, bool]:
    if get_origin(hint) in (Union, types.UnionType):
        members = [arg for arg in get_args(hint) if arg is not type(None)]
        nullable = len(members) != len(get_args(hint))
        if len(members) == 1:
            return members[0], nullable
    return hint, False


def _is_entity_type(candidate: object) -> bool:
    return isinstance(candidate, type) and dataclasses.is_dataclass(candidate)


def _collection_element(hint: Any) -> tuple[type, type] | None:
    origin = get_origin(hint)
    if origin not in _SEQUENCE_ORIGINS:
        return None
    args = [arg for arg in get_args(hint) if arg is not Ellipsis]
    if len(args) != 1 or not _is_entity_type(args[0]):
        return None
    container = tuple if origin is tuple else list
    return args[0], container


@cache
def inspect_entity(
    entity_type: type,
    allowed_types: frozenset[type] = ALLOWED_SCALAR_TYPES,
) -> EntityMetadata:
    """Read and cache the mapping-relevant metadata of an entity dataclass."""

    if not _is_entity_type(entity_type):
        raise MappingConfigurationError(f"{entity_type!r} is not a dataclass entity type")
    try:
        hints = get_type_hints(entity_type)
    except NameError as exc:
        raise MappingConfigurationError(
            f"Cannot resolve type hints of {entity_type.__name__}: {exc}"
        ) from exc

    scalars: list[ScalarField] = []
    collections: list[NavigationCollection] = []
    navigation_types: dict[str, Any] = {}
    declared = {f.name: f for f in dataclasses.fields(entity_type)}

    for name, dataclass_field in declared.items():
        options = options_of(dataclass_field)
        hint, nullable = _unwrap_optional(hints[name])
        navigation_types[name] = hint
        element = _collection_element(hint)
        if element is not None:
            element_type, container = element
            collections.append(
                NavigationCollection(
                    field=name,
                    element_type=element_type,
                    container=container,
                    through=options.through,
                    back_reference=options.back_reference,
                )
            )
            continue
        if options.mapped and hint in allowed_types:
            scalars.append(ScalarField(name, hint, nullable, options))
        elif options.key or options.foreign_key:
            raise MappingConfigurationError(
                f"{entity_type.__name__}.{name} is marked as key/foreign key "
                f"but is not a persistable scalar field"
            )

    foreign_keys: list[ForeignKey] = []
    for scalar in scalars:
        navigation = scalar.options.foreign_key
        if navigation is None:
            continue
        if navigation not in declared:
            raise MappingConfigurationError(
                f"{entity_type.__name__}.{scalar.name} references missing navigation "
                f"field {navigation!r}"
            )
        target = navigation_types[navigation]
        if not _is_entity_type(target):
            raise MappingConfigurationError(
                f"{entity_type.__name__}.{navigation} must be typed as an entity, got {target!r}"
            )
        foreign_keys.append(ForeignKey(field=scalar.name, navigation=navigation, target=target))

    table_override = getattr(entity_type, "__tablename__", None)
    metadata = EntityMetadata(
        entity_type=entity_type,
        table_override=table_override if isinstance(table_override, str) else None,
        scalars=tuple(scalars),
        key_fields=tuple(s.name for s in scalars if s.options.key),
        foreign_keys=tuple(foreign_keys),
        navigation_collections=tuple(collections),
    )
    log.debug(
        "Inspected %s: %d scalar fields, keys=%s",
        entity_type.__name__,
        len(metadata.scalars),
        metadata.key_fields,
    )
    return metadata


class SchemaDescriptor:
    """Builds ``EntitySchema`` records for the entity sets of one context."""

    def __init__(self, allowed_types: Iterable[type] = ALLOWED_SCALAR_TYPES) -> None:
        self.allowed_types = frozenset(allowed_types)

    def table_name(self, entity_type: type, set_name: str) -> str:
        metadata = inspect_entity(entity_type, self.allowed_types)
        return metadata.table_override or set_name

    def describe(
        self,
        entity_type: type,
        *,
        set_name: str,
        store_columns: Iterable[str] | None = None,
    ) -> EntitySchema:
        """Describe ``entity_type`` as stored in the table of ``set_name``.

        When ``store_columns`` is given, fields the table does not have are
        dropped silently; key and foreign-key fields must exist.
        """

        metadata = inspect_entity(entity_type, self.allowed_types)
        table_name = metadata.table_override or set_name
        scalars = metadata.scalars
        if store_columns is not None:
            available = frozenset(store_columns)
            skipped = [s.name for s in scalars if s.name not in available]
            if skipped:
                log.debug("Table %s has no columns for %s", table_name, skipped)
            required = set(metadata.key_fields) | {fk.field for fk in metadata.foreign_keys}
            missing = sorted(required.intersection(skipped))
            if missing:
                raise MappingConfigurationError(
                    f"Table {table_name!r} lacks key/foreign-key columns {missing} "
                    f"declared on {entity_type.__name__}"
                )
            scalars = tuple(s for s in scalars if s.name in available)

        return EntitySchema(
            entity_type=entity_type,
            table_name=table_name,
            columns=tuple(s.name for s in scalars),
            key_fields=metadata.key_fields,
            foreign_keys=metadata.foreign_keys,
            navigation_collections=metadata.navigation_collections,
            scalars=scalars,
        )
