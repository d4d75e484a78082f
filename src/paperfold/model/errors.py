"""
Error Taxonomy
==============
Exceptions raised by the model and controller layers, and the Outcome value
returned by the public PaperManager boundary.

The four kinds:
    NOT_FOUND           face, point, line or adjacency entry is absent
    INVALID_ARGUMENT    same point twice, degenerate geometry, angle outside the case table
    CONFLICT            line or edge already exists, annotation unclassifiable
    INVARIANT_VIOLATION programming bug (broken symmetry, missing group)

The first three are recoverable; the caller shows the message and lets the user
retry. The last one aborts the current operation only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    CONFLICT = "conflict"
    INVARIANT_VIOLATION = "invariant_violation"


class PaperError(Exception):
    """Base class of every failure raised by the folding core."""

    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NotFoundError(PaperError, KeyError):
    kind = ErrorKind.NOT_FOUND


class InvalidArgumentError(PaperError, ValueError):
    kind = ErrorKind.INVALID_ARGUMENT


class ConflictError(PaperError, ValueError):
    kind = ErrorKind.CONFLICT


class InvariantViolationError(PaperError, RuntimeError):
    kind = ErrorKind.INVARIANT_VIOLATION


@dataclass
class Outcome(Generic[T]):
    """
    Discriminated result of a public operation.

    Either ``ok`` is True and ``value`` holds the result, or ``ok`` is False and
    ``error``/``message`` say which precondition failed.
    """
    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def success(value: T) -> Outcome[T]:
        return Outcome(ok=True, value=value)

    @staticmethod
    def failure(exc: PaperError) -> Outcome[Any]:
        return Outcome(ok=False, error=exc.kind, message=exc.message, details=dict(exc.details))

    def __bool__(self) -> bool:
        return self.ok
