"""Declarative entity metadata and the schema descriptors derived from it."""

from __future__ import annotations

from .fields import FieldOptions, FieldRules, collection, column, not_mapped, reference
from .schema import (
    ALLOWED_SCALAR_TYPES,
    EntityMetadata,
    EntitySchema,
    ForeignKey,
    NavigationCollection,
    SchemaDescriptor,
    inspect_entity,
)

__all__ = [
    "ALLOWED_SCALAR_TYPES",
    "EntityMetadata",
    "EntitySchema",
    "FieldOptions",
    "FieldRules",
    "ForeignKey",
    "NavigationCollection",
    "SchemaDescriptor",
    "collection",
    "column",
    "inspect_entity",
    "not_mapped",
    "reference",
]
