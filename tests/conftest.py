from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from miniorm.app import open_context
from tests.helpers.company import CompanyContext, create_company_database
from tests.helpers.stores import RecordingStore

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine


@pytest.fixture
def database_uri(tmp_path: Path) -> str:
    uri = f"sqlite+pysqlite:///{tmp_path / 'company.db'}"
    create_company_database(uri)
    return uri


@pytest.fixture
def sqlite_engine(database_uri: str) -> Iterator[Engine]:
    engine = create_engine(database_uri, future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def company(sqlite_engine: Engine) -> CompanyContext:
    return open_context(CompanyContext, sqlite_engine)


@pytest.fixture
def reload(sqlite_engine: Engine) -> Callable[[], CompanyContext]:
    """Build a fresh context against the same database."""

    def factory() -> CompanyContext:
        return open_context(CompanyContext, sqlite_engine)

    return factory


@pytest.fixture
def recording_store(sqlite_engine: Engine) -> RecordingStore:
    return RecordingStore(sqlite_engine)
