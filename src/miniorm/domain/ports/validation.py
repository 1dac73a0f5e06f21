"""Port for the declarative entity validation predicate."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EntityValidator(Protocol):
    """Pass/fail predicate evaluated for every entity before a save."""

    def is_valid(self, entity: object) -> bool: ...
