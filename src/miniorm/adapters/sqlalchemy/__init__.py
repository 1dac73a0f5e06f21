"""SQLAlchemy adapter package for miniorm."""

from __future__ import annotations

from .store import SqlAlchemyStore, StoreClosedError

__all__ = [
    "SqlAlchemyStore",
    "StoreClosedError",
]
