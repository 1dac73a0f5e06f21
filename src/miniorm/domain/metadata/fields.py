"""Declarative field markers for entity dataclasses.

Entities are plain ``@dataclass`` classes. The helpers below wrap
``dataclasses.field`` and attach a ``FieldOptions`` record under the
``METADATA_KEY`` entry of the field metadata::

    @dataclass(eq=False, kw_only=True)
    class Employee:
        id: int | None = column(key=True, default=None)
        first_name: str = column(required=True, max_length=50)
        department_id: int | None = column(foreign_key="department", default=None)
        department: Department | None = reference()
        projects: list[Project] = collection(through=EmployeeProject)
        nickname: str | None = not_mapped(default=None)
"""

from __future__ import annotations

from dataclasses import MISSING, Field, dataclass, field
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from decimal import Decimal

METADATA_KEY: Final[str] = "miniorm"

type Bound = int | float | Decimal


@dataclass(frozen=True, slots=True)
class FieldRules:
    """Validation rules evaluated by the entity validator."""

    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    ge: Bound | None = None
    le: Bound | None = None
    pattern: str | None = None


@dataclass(frozen=True, slots=True)
class FieldOptions:
    key: bool = False
    foreign_key: str | None = None
    mapped: bool = True
    navigation: bool = False
    through: type | None = None
    back_reference: str | None = None
    rules: FieldRules = FieldRules()


NO_OPTIONS: Final[FieldOptions] = FieldOptions()


def options_of(dataclass_field: Field[Any]) -> FieldOptions:
    """Return the miniorm options attached to a dataclass field (defaults if none)."""

    metadata: Mapping[str, object] = dataclass_field.metadata
    found = metadata.get(METADATA_KEY)
    return found if isinstance(found, FieldOptions) else NO_OPTIONS


def column(
    *,
    key: bool = False,
    foreign_key: str | None = None,
    required: bool = False,
    min_length: int | None = None,
    max_length: int | None = None,
    ge: Bound | None = None,
    le: Bound | None = None,
    pattern: str | None = None,
    default: Any = MISSING,
    default_factory: Callable[[], Any] | Any = MISSING,
) -> Any:
    """Declare a persisted scalar field.

    ``key`` marks a primary-key field; two or more keys on one type make it a
    link entity. ``foreign_key`` names the navigation field the value points at.
    """

    rules = FieldRules(
        required=required,
        min_length=min_length,
        max_length=max_length,
        ge=ge,
        le=le,
        pattern=pattern,
    )
    options = FieldOptions(key=key, foreign_key=foreign_key, rules=rules)
    return field(
        default=default,
        default_factory=default_factory,
        metadata={METADATA_KEY: options},
    )


def reference() -> Any:
    """Declare a scalar navigation field, wired after load."""

    return field(
        default=None,
        repr=False,
        compare=False,
        metadata={METADATA_KEY: FieldOptions(mapped=False, navigation=True)},
    )


def collection(*, through: type | None = None, foreign_key: str | None = None) -> Any:
    """Declare a navigation collection, wired after load.

    ``through`` names the link entity of a many-to-many relation. ``foreign_key``
    picks the field on the target (or link) type that points back at the owner
    when more than one does.
    """

    options = FieldOptions(
        mapped=False,
        navigation=True,
        through=through,
        back_reference=foreign_key,
    )
    return field(
        default_factory=list,
        repr=False,
        compare=False,
        metadata={METADATA_KEY: options},
    )


def not_mapped(
    *,
    default: Any = MISSING,
    default_factory: Callable[[], Any] | Any = MISSING,
) -> Any:
    """Declare a field that is never read from or written to the store."""

    return field(
        default=default,
        default_factory=default_factory,
        metadata={METADATA_KEY: FieldOptions(mapped=False)},
    )
