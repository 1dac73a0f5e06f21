"""Entity validation backed by pydantic models generated from field rules."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from functools import cache
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from miniorm.domain.metadata.schema import ALLOWED_SCALAR_TYPES, inspect_entity

if TYPE_CHECKING:
    from collections.abc import Iterable

    from miniorm.domain.metadata.schema import EntityMetadata, ScalarField

log = logging.getLogger(__name__)

_ORDERED_TYPES = (int, float, Decimal, date, datetime)


def _field_definition(scalar: ScalarField) -> tuple[Any, Any]:
    rules = scalar.rules
    annotation: Any = scalar.value_type if rules.required else scalar.value_type | None
    constraints: dict[str, Any] = {}
    if scalar.value_type is str:
        min_length = rules.min_length
        if rules.required and min_length is None:
            min_length = 1
        constraints.update(min_length=min_length, max_length=rules.max_length)
        if rules.pattern is not None:
            constraints["pattern"] = rules.pattern
    if scalar.value_type in _ORDERED_TYPES:
        constraints.update(ge=rules.ge, le=rules.le)
    # Omitted fields keep the unvalidated default and therefore always pass.
    return annotation, Field(default=None, **constraints)


@cache
def rules_model(entity_type: type, allowed_types: frozenset[type]) -> type[BaseModel]:
    """Return the (cached) pydantic model enforcing the rules declared on ``entity_type``."""

    metadata = inspect_entity(entity_type, allowed_types)
    definitions = {scalar.name: _field_definition(scalar) for scalar in metadata.scalars}
    return create_model(
        f"{entity_type.__name__}Rules",
        __config__=ConfigDict(extra="ignore"),
        **definitions,
    )


def _deferred_foreign_keys(metadata: EntityMetadata, entity: object) -> set[str]:
    """Foreign keys still None whose navigation reference is set (resolved on save)."""

    return {
        fk.field
        for fk in metadata.foreign_keys
        if getattr(entity, fk.field) is None and getattr(entity, fk.navigation, None) is not None
    }


class PydanticEntityValidator:
    """Evaluate the ``column(...)`` rules of an entity with pydantic."""

    def __init__(self, allowed_types: Iterable[type] = ALLOWED_SCALAR_TYPES) -> None:
        self._allowed_types = frozenset(allowed_types)

    def errors(self, entity: object) -> list[str]:
        entity_type = type(entity)
        metadata = inspect_entity(entity_type, self._allowed_types)
        model = rules_model(entity_type, self._allowed_types)
        skipped = _deferred_foreign_keys(metadata, entity)
        payload = {
            scalar.name: getattr(entity, scalar.name)
            for scalar in metadata.scalars
            if scalar.name not in skipped
        }
        try:
            model.model_validate(payload)
        except ValidationError as exc:
            messages = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            log.debug("%s failed validation: %s", entity_type.__name__, messages)
            return messages
        return []

    def is_valid(self, entity: object) -> bool:
        return not self.errors(entity)
