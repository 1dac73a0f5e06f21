"""Per-set bookkeeping of added, removed and modified entities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from miniorm.domain.metadata.schema import EntitySchema


def _index_of(items: list[Any], entity: object) -> int | None:
    for index, item in enumerate(items):
        if item is entity:
            return index
    return None


class ChangeTracker[TEntity]:
    """Tracks changes of one entity set between two persists.

    Entities are tracked by identity. Adding an entity removed since the last
    persist cancels the removal and vice versa, so an entity is never both
    added and removed within one cycle.

    Modified entities are found by comparing current column values with the
    snapshot taken at load time or at the last successful persist.
    """

    def __init__(self, schema: EntitySchema, entities: Iterable[TEntity] = ()) -> None:
        self._schema = schema
        self._added: list[TEntity] = []
        self._removed: list[TEntity] = []
        self._baseline: dict[int, tuple[TEntity, dict[str, Any]]] = {}
        self.accept_changes(entities)

    @property
    def added(self) -> tuple[TEntity, ...]:
        return tuple(self._added)

    @property
    def removed(self) -> tuple[TEntity, ...]:
        return tuple(self._removed)

    def record_added(self, entity: TEntity) -> None:
        index = _index_of(self._removed, entity)
        if index is not None:
            del self._removed[index]
            return
        self._added.append(entity)

    def record_removed(self, entity: TEntity) -> None:
        index = _index_of(self._added, entity)
        if index is not None:
            del self._added[index]
            return
        self._removed.append(entity)

    def is_added(self, entity: TEntity) -> bool:
        return _index_of(self._added, entity) is not None

    def original_values(self, entity: TEntity) -> dict[str, Any] | None:
        """Return the persisted snapshot of ``entity``, if it has one."""
        tracked = self._baseline.get(id(entity))
        if tracked is None or tracked[0] is not entity:
            return None
        return dict(tracked[1])

    def original_key(self, entity: TEntity) -> dict[str, Any]:
        snapshot = self.original_values(entity)
        if snapshot is None:
            return self._schema.key_of(entity)
        return {name: snapshot[name] for name in self._schema.key_fields}

    def modified(self, current: Iterable[TEntity]) -> list[TEntity]:
        changed: list[TEntity] = []
        for entity in current:
            if self.is_added(entity):
                continue
            snapshot = self.original_values(entity)
            if snapshot is None:
                continue
            if self._schema.values_of(entity) != snapshot:
                changed.append(entity)
        return changed

    def accept_changes(self, current: Iterable[TEntity]) -> None:
        """Forget pending changes and snapshot ``current`` as the persisted state."""
        self._added.clear()
        self._removed.clear()
        self._baseline = {
            id(entity): (entity, self._schema.values_of(entity)) for entity in current
        }
