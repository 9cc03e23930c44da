from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"
    CONFLICT = "conflict"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(slots=True)
class ServiceResult(Generic[T]):
    """Outcome of a service call handed back to the presentation layer."""

    success: bool
    value: T | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    notification_failed: bool = False

    @classmethod
    def ok(cls, value: T | None = None, *, notification_failed: bool = False) -> ServiceResult[T]:
        return cls(success=True, value=value, notification_failed=notification_failed)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> ServiceResult[T]:
        return cls(success=False, error=error, error_kind=kind)

    @classmethod
    def not_found(cls, error: str = "Ticket not found") -> ServiceResult[T]:
        return cls.fail(ErrorKind.NOT_FOUND, error)

    @classmethod
    def invalid(cls, error: str) -> ServiceResult[T]:
        return cls.fail(ErrorKind.VALIDATION_FAILED, error)
