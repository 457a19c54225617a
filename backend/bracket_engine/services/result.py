"""
Tagged result returned by every public service operation.

Expected failures (bad input, unmet preconditions, stale versions) come back as
Err values with a human-readable message; only unexpected faults propagate as
exceptions.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from bracket_engine.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)

T = TypeVar("T")


class ErrorKind(str, Enum):
    validation = "validation"
    state_conflict = "state_conflict"
    not_found = "not_found"
    concurrency_conflict = "concurrency_conflict"
    persistence_failure = "persistence_failure"
    forbidden = "forbidden"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def err_from_exception(exc: Exception) -> Err:
    """Map a repository exception onto its error kind."""
    if isinstance(exc, ConcurrencyConflictError):
        return Err(ErrorKind.concurrency_conflict, str(exc))
    if isinstance(exc, StateConflictError):
        return Err(ErrorKind.state_conflict, str(exc))
    if isinstance(exc, NotFoundError):
        return Err(ErrorKind.not_found, str(exc))
    if isinstance(exc, ValidationError):
        return Err(ErrorKind.validation, str(exc))
    return Err(ErrorKind.persistence_failure, str(exc))


def validation_error(message: str) -> Err:
    return Err(ErrorKind.validation, message)


def not_found(message: str) -> Err:
    return Err(ErrorKind.not_found, message)


def state_conflict(message: str) -> Err:
    return Err(ErrorKind.state_conflict, message)
