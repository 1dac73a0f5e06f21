"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import KeyValues, Row, Store, Transaction, connection_scope
from .validation import EntityValidator

__all__ = [
    "EntityValidator",
    "KeyValues",
    "Row",
    "Store",
    "Transaction",
    "connection_scope",
]
