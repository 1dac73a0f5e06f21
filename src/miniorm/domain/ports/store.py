"""Port describing the relational store the core reads from and writes to."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

type Row = Mapping[str, Any]
type KeyValues = Mapping[str, Any]


@runtime_checkable
class Transaction(Protocol):
    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@runtime_checkable
class Store(Protocol):
    """Driver adapter contract.

    ``None`` is the null marker in both directions. Write operations run inside
    the transaction returned by ``begin`` and never commit on their own.
    """

    def open(self) -> None: ...

    def close(self) -> None: ...

    def execute_scalar(self, statement: str, params: Mapping[str, Any] | None = None) -> Any: ...

    def fetch_column_names(self, table_name: str) -> frozenset[str]: ...

    def fetch_rows(
        self, table_name: str, column_names: Sequence[str]
    ) -> list[tuple[Any, ...]]: ...

    def begin(self) -> Transaction: ...

    def insert_rows(
        self, table_name: str, rows: Sequence[Row], transaction: Transaction
    ) -> list[KeyValues]: ...

    def update_rows(
        self,
        table_name: str,
        changes: Sequence[tuple[KeyValues, Row]],
        transaction: Transaction,
    ) -> None: ...

    def delete_rows(
        self, table_name: str, keys: Sequence[KeyValues], transaction: Transaction
    ) -> None: ...


@contextmanager
def connection_scope(store: Store) -> Iterator[Store]:
    """Keep ``store`` open for the duration of the block, closing it on every exit path."""

    store.open()
    try:
        yield store
    finally:
        store.close()
