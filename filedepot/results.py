"""
Explicit result values returned by the storage and database clients.

Collaborator calls never raise for expected failures; they hand back either
``Ok(data)`` or ``Err(StoreError)`` and the caller decides what to show.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, Optional, TypeVar, Union

T = TypeVar("T")

# Postgres SQLSTATE codes; the in-memory client reports the same ones.
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NO_DATA_FOUND = "P0002"


@dataclass(frozen=True)
class StoreError:
    message: str
    code: Optional[str] = None

    @property
    def is_conflict(self) -> bool:
        return self.code == UNIQUE_VIOLATION

    @property
    def is_not_found(self) -> bool:
        return self.code == NO_DATA_FOUND


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T


@dataclass(frozen=True)
class Err:
    error: StoreError


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class Notice:
    """User-facing notification produced by a component operation."""

    level: Literal["success", "error", "info"]
    message: str
    # validation, conflict, not_found, forbidden, unauthorized, confirm or failure
    kind: Optional[str] = None

    @classmethod
    def success(cls, message: str) -> "Notice":
        return cls("success", message)

    @classmethod
    def error(cls, message: str, kind: str = "failure") -> "Notice":
        return cls("error", message, kind)

    @classmethod
    def info(cls, message: str, kind: Optional[str] = None) -> "Notice":
        return cls("info", message, kind)

    @property
    def is_error(self) -> bool:
        return self.level == "error"
