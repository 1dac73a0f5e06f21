"""Error taxonomy raised by the mapping and persistence core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class MiniOrmError(Exception):
    """Base class for errors raised by miniorm itself."""


class MappingConfigurationError(MiniOrmError):
    """Raised when entity metadata cannot be turned into a usable mapping."""


class ReferentialIntegrityError(MiniOrmError):
    """Raised when a loaded foreign key points at a row that was not loaded."""


class EntityValidationError(MiniOrmError):
    """Raised by ``save_changes`` before any write when entities fail validation."""

    def __init__(self, set_name: str, entities: Sequence[object]) -> None:
        self.set_name = set_name
        self.entities = tuple(entities)
        super().__init__(f"{len(self.entities)} invalid entities found in {set_name!r}")

    @property
    def count(self) -> int:
        return len(self.entities)
