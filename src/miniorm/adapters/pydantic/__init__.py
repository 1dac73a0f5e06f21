"""Pydantic adapter package for miniorm."""

from __future__ import annotations

from .validation import PydanticEntityValidator, rules_model

__all__ = [
    "PydanticEntityValidator",
    "rules_model",
]
