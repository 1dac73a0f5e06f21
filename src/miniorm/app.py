"""Composition entry points wiring contexts to the configured adapters."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy.engine import Engine

from miniorm.adapters.pydantic import PydanticEntityValidator
from miniorm.adapters.sqlalchemy import SqlAlchemyStore
from miniorm.config import get_database_config
from miniorm.domain.context import DbContext
from miniorm.domain.metadata import ALLOWED_SCALAR_TYPES

if TYPE_CHECKING:
    from collections.abc import Iterable

    from miniorm.domain.ports import EntityValidator, Store

type Connectable = str | Engine | Store

log = getLogger(__name__)


def resolve_store(connection: Connectable | None = None) -> Store:
    """Turn a URI, an engine or an existing store into a ``Store``.

    ``None`` falls back to ``DATABASE_URI`` or the SQLite file in the data directory.
    """

    if connection is None:
        config = get_database_config()
        log.debug("Using configured database %s", config.url)
        return SqlAlchemyStore.from_uri(config.uri)
    if isinstance(connection, str):
        return SqlAlchemyStore.from_uri(connection)
    if isinstance(connection, Engine):
        return SqlAlchemyStore(connection)
    return connection


def open_context[TContext: DbContext](
    context_type: type[TContext],
    connection: Connectable | None = None,
    *,
    validator: EntityValidator | None = None,
    allowed_types: Iterable[type] = ALLOWED_SCALAR_TYPES,
) -> TContext:
    """Build ``context_type`` against the given or configured database."""

    allowed = frozenset(allowed_types)
    effective_validator = validator or PydanticEntityValidator(allowed)
    return context_type(
        resolve_store(connection),
        validator=effective_validator,
        allowed_types=allowed,
    )
