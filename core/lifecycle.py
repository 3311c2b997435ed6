"""
core/lifecycle.py -- Soft-delete state shared by Account and Listing.

A row is either Active or Deleted(at). The store maps the nullable deleted_at
column onto this type and every query filters on it explicitly; there is no
global hook that hides deleted rows behind the caller's back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class Deleted:
    at: str  # ISO 8601


Lifecycle = Union[Active, Deleted]

ACTIVE = Active()


def from_column(deleted_at: Optional[str]) -> Lifecycle:
    return Deleted(at=deleted_at) if deleted_at else ACTIVE
