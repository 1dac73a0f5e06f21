"""The database context: declared entity sets, loaded and wired at construction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, get_args, get_origin, get_type_hints

from miniorm.domain.db_set import DbSet
from miniorm.domain.errors import MappingConfigurationError
from miniorm.domain.metadata.schema import ALLOWED_SCALAR_TYPES, SchemaDescriptor
from miniorm.domain.persistence import PersistenceOrchestrator
from miniorm.domain.ports.store import connection_scope
from miniorm.domain.relations import RelationMapper

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from miniorm.domain.metadata.schema import EntitySchema
    from miniorm.domain.persistence import SaveResult
    from miniorm.domain.ports import EntityValidator, Store

log = logging.getLogger(__name__)


def declared_sets(context_type: type) -> dict[str, type]:
    """Return ``{attribute name: entity type}`` for every ``DbSet[...]`` annotation.

    Base classes come first, then annotations in class-body order.
    """

    try:
        hints = get_type_hints(context_type)
    except NameError as exc:
        raise MappingConfigurationError(
            f"Cannot resolve entity sets of {context_type.__name__}: {exc}"
        ) from exc

    declarations: dict[str, type] = {}
    for name, hint in hints.items():
        if get_origin(hint) is not DbSet:
            continue
        (entity_type,) = get_args(hint)
        declarations[name] = entity_type
    return declarations


class DbContext:
    """Base class for contexts declaring their entity sets as annotations::

        class CompanyContext(DbContext):
            departments: DbSet[Department]
            employees: DbSet[Employee]

    Construction loads every set through ``store``, wires navigation fields and
    fails with a ``MappingConfigurationError`` or ``ReferentialIntegrityError`` if
    the mapping cannot be completed. Sets are saved in declaration order.
    ``miniorm.app.open_context`` builds a context from a URI, an engine or the
    environment.
    """

    def __init__(
        self,
        store: Store,
        *,
        validator: EntityValidator,
        allowed_types: Iterable[type] = ALLOWED_SCALAR_TYPES,
    ) -> None:
        self._store = store
        self._descriptor = SchemaDescriptor(allowed_types)
        self._validator = validator
        self._declarations = declared_sets(type(self))
        self._check_declarations()

        with connection_scope(self._store):
            self._sets = self._load_sets()

        RelationMapper({s.schema.entity_type: s for s in self._sets.values()}).map()

    @property
    def store(self) -> Store:
        return self._store

    @property
    def sets(self) -> Mapping[str, DbSet[Any]]:
        return dict(self._sets)

    def set_for[TEntity](self, entity_type: type[TEntity]) -> DbSet[TEntity]:
        for db_set in self._sets.values():
            if db_set.schema.entity_type is entity_type:
                return db_set
        raise KeyError(f"{entity_type.__name__} has no entity set in {type(self).__name__}")

    def schema_for(self, entity_type: type) -> EntitySchema:
        return self.set_for(entity_type).schema

    def save_changes(self) -> SaveResult:
        """Validate and persist every tracked change in one transaction."""
        return PersistenceOrchestrator(self._store, self._validator).save(self._sets)

    def _check_declarations(self) -> None:
        name = type(self).__name__
        if not self._declarations:
            raise MappingConfigurationError(f"{name} declares no entity sets")
        seen: dict[type, str] = {}
        for set_name, entity_type in self._declarations.items():
            if entity_type in seen:
                raise MappingConfigurationError(
                    f"{name} declares {entity_type.__name__} twice "
                    f"({seen[entity_type]!r} and {set_name!r})"
                )
            seen[entity_type] = set_name

    def _load_sets(self) -> dict[str, DbSet[Any]]:
        loaded: dict[str, DbSet[Any]] = {}
        for set_name, entity_type in self._declarations.items():
            table_name = self._descriptor.table_name(entity_type, set_name)
            schema = self._descriptor.describe(
                entity_type,
                set_name=set_name,
                store_columns=self._store.fetch_column_names(table_name),
            )
            rows = self._store.fetch_rows(schema.table_name, schema.columns)
            db_set: DbSet[Any] = DbSet(schema, (schema.materialize(row) for row in rows))
            setattr(self, set_name, db_set)
            loaded[set_name] = db_set
            log.info("Loaded %d rows from %s into %s", len(rows), schema.table_name, set_name)
        return loaded
