"""Typed, change-tracked entity collections."""

from __future__ import annotations

from collections.abc import Collection
from typing import TYPE_CHECKING

from miniorm.domain.tracking import ChangeTracker

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from miniorm.domain.metadata.schema import EntitySchema


class DbSet[TEntity](Collection[TEntity]):
    """All loaded entities of one type; every add and remove goes through the tracker.

    Membership is by identity: two entities with equal keys are distinct items.
    Duplicate adds are not rejected here.
    """

    def __init__(self, schema: EntitySchema, entities: Iterable[TEntity] = ()) -> None:
        self._schema = schema
        self._entities: list[TEntity] = list(entities)
        self._tracker: ChangeTracker[TEntity] = ChangeTracker(schema, self._entities)

    @property
    def schema(self) -> EntitySchema:
        return self._schema

    @property
    def tracker(self) -> ChangeTracker[TEntity]:
        return self._tracker

    def add(self, entity: TEntity) -> None:
        if entity is None:
            raise ValueError("entity cannot be None")
        self._entities.append(entity)
        self._tracker.record_added(entity)

    def remove(self, entity: TEntity) -> bool:
        """Remove ``entity``; return False (and track nothing) if it is not in the set."""
        if entity is None:
            raise ValueError("entity cannot be None")
        for index, item in enumerate(self._entities):
            if item is entity:
                del self._entities[index]
                self._tracker.record_removed(entity)
                return True
        return False

    def remove_range(self, entities: Iterable[TEntity]) -> int:
        return sum(1 for entity in list(entities) if self.remove(entity))

    def clear(self) -> None:
        while self._entities:
            self.remove(self._entities[0])

    def __contains__(self, entity: object) -> bool:
        return any(item is entity for item in self._entities)

    def __iter__(self) -> Iterator[TEntity]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __repr__(self) -> str:
        return f"DbSet[{self._schema.name}](count={len(self._entities)})"
