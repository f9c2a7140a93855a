from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class ServiceError(Exception):
    """Base service exception."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(ServiceError):
    """Raised when request data fails validation."""


class NotFoundError(ServiceError):
    """Raised when a referenced post, comment or user does not exist."""


class PermissionDeniedError(ServiceError):
    """Raised when the caller does not own the resource."""


class ConflictError(ServiceError):
    """Raised when a uniqueness constraint rejects an insert."""


class StorageError(ServiceError):
    """Raised when the object store or database fails a write."""


class ApiError(HTTPException):
    """HTTP exception rendered as {"error": ..., "details": ...}."""

    def __init__(
        self,
        status_code: int,
        error: str,
        details: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        body: dict[str, Any] = {"error": error}
        if details is not None:
            body["details"] = details
        super().__init__(status_code=status_code, detail=body, headers=headers)


_STATUS_BY_ERROR: list[tuple[type[ServiceError], int]] = [
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def to_api_error(exc: ServiceError) -> ApiError:
    """Translate a service exception into its HTTP counterpart."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return ApiError(status_code, exc.message, exc.details)
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message, exc.details)
