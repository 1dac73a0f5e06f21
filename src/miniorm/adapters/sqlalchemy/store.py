"""SQLAlchemy Core implementation of the ``Store`` port."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import MetaData, Table, and_, create_engine, delete, insert, inspect, select, text
from sqlalchemy import update as sa_update

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy.engine import Connection, Engine
    from sqlalchemy.sql.elements import ColumnElement

    from miniorm.domain.ports import KeyValues, Row, Transaction

log = logging.getLogger(__name__)


class StoreClosedError(RuntimeError):
    """Raised when a store operation runs outside an open connection scope."""


class SqlAlchemyStore:
    """Relational store reached through one SQLAlchemy connection at a time.

    Tables are reflected on first use and cached for the lifetime of the store.
    The transaction handle returned by ``begin`` is SQLAlchemy's own
    ``RootTransaction``.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._metadata = MetaData()
        self._connection: Connection | None = None

    @classmethod
    def from_uri(cls, database_uri: str) -> SqlAlchemyStore:
        return cls(create_engine(database_uri, future=True))

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise StoreClosedError("Store connection is not open")
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def open(self) -> None:
        if self._connection is not None:
            raise StoreClosedError("Store connection is already open")
        self._connection = self.engine.connect()
        log.debug("Opened connection to %s", self.engine.url.render_as_string())

    def close(self) -> None:
        if self._connection is None:
            return
        self._connection.close()
        self._connection = None

    def dispose(self) -> None:
        self.close()
        self.engine.dispose()

    def table(self, table_name: str) -> Table:
        cached = self._metadata.tables.get(table_name)
        if cached is not None:
            return cached
        return Table(table_name, self._metadata, autoload_with=self.connection)

    def execute_scalar(self, statement: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.connection.execute(text(statement), dict(params or {})).scalar()

    def fetch_column_names(self, table_name: str) -> frozenset[str]:
        columns = inspect(self.connection).get_columns(table_name)
        return frozenset(column["name"] for column in columns)

    def fetch_rows(self, table_name: str, column_names: Sequence[str]) -> list[tuple[Any, ...]]:
        table = self.table(table_name)
        stmt = select(*(table.c[name] for name in column_names))
        return [tuple(row) for row in self.connection.execute(stmt)]

    def begin(self) -> Transaction:
        return self.connection.begin()

    def insert_rows(
        self, table_name: str, rows: Sequence[Row], transaction: Transaction
    ) -> list[KeyValues]:
        _ = transaction
        table = self.table(table_name)
        generated: list[KeyValues] = []
        for row in rows:
            result = self.connection.execute(insert(table).values(dict(row)))
            primary_key = result.inserted_primary_key
            names = [column.name for column in table.primary_key.columns]
            generated.append(dict(zip(names, primary_key or (), strict=False)))
        log.debug("Inserted %d rows into %s", len(rows), table_name)
        return generated

    def update_rows(
        self,
        table_name: str,
        changes: Sequence[tuple[KeyValues, Row]],
        transaction: Transaction,
    ) -> None:
        _ = transaction
        table = self.table(table_name)
        for key, values in changes:
            stmt = sa_update(table).where(self._matches(table, key)).values(dict(values))
            self.connection.execute(stmt)
        log.debug("Updated %d rows in %s", len(changes), table_name)

    def delete_rows(
        self, table_name: str, keys: Sequence[KeyValues], transaction: Transaction
    ) -> None:
        _ = transaction
        table = self.table(table_name)
        for key in keys:
            self.connection.execute(delete(table).where(self._matches(table, key)))
        log.debug("Deleted %d rows from %s", len(keys), table_name)

    @staticmethod
    def _matches(table: Table, key: KeyValues) -> ColumnElement[bool]:
        if not key:
            raise ValueError(f"Cannot address rows of {table.name} without key values")
        return and_(*(table.c[name] == value for name, value in key.items()))
