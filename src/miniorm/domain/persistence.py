"""Transactional persistence of tracked changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from miniorm.domain.errors import EntityValidationError, ReferentialIntegrityError
from miniorm.domain.ports.store import connection_scope

if TYPE_CHECKING:
    from collections.abc import Mapping

    from miniorm.domain.db_set import DbSet
    from miniorm.domain.metadata.schema import EntitySchema
    from miniorm.domain.ports import EntityValidator, Row, Store, Transaction

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SaveResult:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.deleted

    def __add__(self, other: SaveResult) -> SaveResult:
        return SaveResult(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
        )


class _Undo:
    """Field assignments made during a save, reverted if the save fails."""

    def __init__(self) -> None:
        self._changes: list[tuple[object, str, Any]] = []

    def assign(self, entity: object, name: str, value: Any) -> None:
        self._changes.append((entity, name, getattr(entity, name)))
        setattr(entity, name, value)

    def revert(self) -> None:
        for entity, name, previous in reversed(self._changes):
            setattr(entity, name, previous)
        self._changes.clear()


class PersistenceOrchestrator:
    """Validates, then writes every set's changes inside one transaction.

    Sets are persisted in the order of ``sets``. Foreign keys that point at an
    entity inserted later in the same save are written by a follow-up update
    before the commit.
    """

    def __init__(self, store: Store, validator: EntityValidator) -> None:
        self._store = store
        self._validator = validator

    def save(self, sets: Mapping[str, DbSet[Any]]) -> SaveResult:
        schemas = {db_set.schema.entity_type: db_set.schema for db_set in sets.values()}
        undo = _Undo()
        for db_set in sets.values():
            self._sync_foreign_keys(db_set, schemas, undo)
        try:
            self.validate(sets)
        except EntityValidationError:
            undo.revert()
            raise

        result = SaveResult()
        with connection_scope(self._store):
            transaction = self._store.begin()
            try:
                for set_name, db_set in sets.items():
                    self._sync_foreign_keys(db_set, schemas, undo)
                    persisted = self._persist(db_set, transaction, undo)
                    if persisted.total:
                        log.debug("Persisted %s: %s", set_name, persisted)
                    result += persisted
                for db_set in sets.values():
                    self._complete_foreign_keys(db_set, schemas, transaction, undo)
                transaction.commit()
            except BaseException as exc:
                log.warning("Rolling back save: %s", exc)
                try:
                    transaction.rollback()
                except Exception:
                    log.exception("Rollback failed")
                undo.revert()
                raise

        for db_set in sets.values():
            db_set.tracker.accept_changes(db_set)
        log.info(
            "Saved changes: inserted=%d, updated=%d, deleted=%d",
            result.inserted,
            result.updated,
            result.deleted,
        )
        return result

    def validate(self, sets: Mapping[str, DbSet[Any]]) -> None:
        """Raise ``EntityValidationError`` for the first set holding invalid entities."""

        failures = {
            set_name: invalid
            for set_name, db_set in sets.items()
            if (invalid := [e for e in db_set if not self._validator.is_valid(e)])
        }
        if not failures:
            return
        for set_name, invalid in failures.items():
            log.warning("%d invalid entities in %s", len(invalid), set_name)
        set_name, invalid = next(iter(failures.items()))
        raise EntityValidationError(set_name, invalid)

    @staticmethod
    def _sync_foreign_keys(
        db_set: DbSet[Any],
        schemas: Mapping[type, EntitySchema],
        undo: _Undo,
    ) -> list[Any]:
        """Copy keys of referenced entities into foreign-key fields that are still None.

        Returns the entities that received a value, each once.
        """

        synced: dict[int, Any] = {}
        for foreign_key in db_set.schema.foreign_keys:
            target = schemas.get(foreign_key.target)
            if target is None or len(target.key_fields) != 1:
                continue
            for entity in db_set:
                if getattr(entity, foreign_key.field) is not None:
                    continue
                related = getattr(entity, foreign_key.navigation, None)
                if related is None:
                    continue
                value = getattr(related, target.key_fields[0])
                if value is not None:
                    undo.assign(entity, foreign_key.field, value)
                    synced[id(entity)] = entity
        return list(synced.values())

    def _complete_foreign_keys(
        self,
        db_set: DbSet[Any],
        schemas: Mapping[type, EntitySchema],
        transaction: Transaction,
        undo: _Undo,
    ) -> None:
        """Write foreign keys whose referenced entity only got its key later in this save.

        This covers parents persisted after their children: sets declared later, or
        references within one set. A reference whose target still has no key fails
        the save.
        """

        schema = db_set.schema
        completed = self._sync_foreign_keys(db_set, schemas, undo)
        if completed:
            changes = [(schema.key_of(entity), schema.values_of(entity)) for entity in completed]
            self._store.update_rows(schema.table_name, changes, transaction)
            log.debug("Completed foreign keys of %d %s rows", len(completed), schema.table_name)

        for foreign_key in schema.foreign_keys:
            for entity in db_set:
                if getattr(entity, foreign_key.field) is not None:
                    continue
                related = getattr(entity, foreign_key.navigation, None)
                if related is not None:
                    raise ReferentialIntegrityError(
                        f"{schema.table_name}.{foreign_key.field} cannot be set: the referenced "
                        f"{type(related).__name__} was not saved in this context"
                    )

    def _persist(self, db_set: DbSet[Any], transaction: Transaction, undo: _Undo) -> SaveResult:
        schema = db_set.schema
        tracker = db_set.tracker

        added = tracker.added
        if added:
            rows = [self._insert_row(schema, entity) for entity in added]
            generated = self._store.insert_rows(schema.table_name, rows, transaction)
            for entity, keys in zip(added, generated, strict=True):
                for name, value in keys.items():
                    if name in schema.key_fields and getattr(entity, name) is None:
                        undo.assign(entity, name, value)

        modified = tracker.modified(db_set)
        if modified:
            changes = [
                (tracker.original_key(entity), schema.values_of(entity)) for entity in modified
            ]
            self._store.update_rows(schema.table_name, changes, transaction)

        removed = tracker.removed
        if removed:
            keys = [tracker.original_key(entity) for entity in removed]
            self._store.delete_rows(schema.table_name, keys, transaction)

        return SaveResult(inserted=len(added), updated=len(modified), deleted=len(removed))

    @staticmethod
    def _insert_row(schema: EntitySchema, entity: object) -> Row:
        values = schema.values_of(entity)
        for name in schema.key_fields:
            if values[name] is None:
                del values[name]
        return values
