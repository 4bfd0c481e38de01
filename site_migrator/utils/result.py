"""
Tiny result type for best-effort lookups.

A best-effort lookup (for example scraping a legacy page's body class)
returns either :class:`Ok` carrying the value or :class:`Skipped` carrying
the reason it produced nothing, so callers branch on the shape instead of
on ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Skipped:
    reason: str


Result = Union[Ok[T], Skipped]

