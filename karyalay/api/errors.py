from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException, status

from karyalay.results import ErrorKind, ServiceResult

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap(result: ServiceResult[T]) -> T:
    """Return the result value or raise the matching ``HTTPException``."""

    if not result.success:
        code = STATUS_BY_KIND.get(result.error_kind or ErrorKind.PERSISTENCE_FAILED, 500)
        raise HTTPException(status_code=code, detail=result.error or "Request failed")
    return result.value  # type: ignore[return-value]
