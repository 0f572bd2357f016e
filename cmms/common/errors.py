"""Error kinds surfaced to callers of the maintenance backend.

Every error carries a machine-readable ``kind`` and the HTTP status the API
layer answers with.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


class CMMSError(Exception):
    """Base class for all domain errors."""

    kind: ClassVar[str] = "error"
    status_code: ClassVar[int] = 500

    def __init__(self, detail: str) -> None:
        """Create the error with a human readable detail message."""
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for an API response."""
        return {"error": self.kind, "detail": self.detail}


class UnauthenticatedError(CMMSError):
    """Raised when the caller identity is missing or invalid."""

    kind = "unauthenticated"
    status_code = 401


class AccountInactiveError(CMMSError):
    """Raised when the caller account is not active."""

    kind = "account_inactive"
    status_code = 401


class ForbiddenError(CMMSError):
    """Raised when the permission grid or an ownership rule denies an action."""

    kind = "forbidden"
    status_code = 403


class NotFoundError(CMMSError):
    """Raised when a record is absent or outside the caller's visibility scope."""

    kind = "not_found"
    status_code = 404


@dataclass(frozen=True)
class FieldError:
    """A single rejected payload field."""

    field: str
    message: str


class ValidationFailedError(CMMSError):
    """Raised when a payload violates shape or range rules."""

    kind = "validation_failed"
    status_code = 400

    def __init__(self, *errors: FieldError) -> None:
        """Create the error from one or more field errors."""
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> ValidationFailedError:
        """Shortcut for an error on one field."""
        return cls(FieldError(field, message))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error including the field list."""
        return {
            **super().to_dict(),
            "fields": [{"field": e.field, "message": e.message} for e in self.errors],
        }


class InsufficientStockError(CMMSError):
    """Raised when a subtraction would drive material stock below zero."""

    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, material_id: str, available: int, requested: int) -> None:
        """Create the error with the stock figures that caused it."""
        super().__init__(
            f"Insufficient stock for material {material_id}: "
            f"{available} available, {requested} requested",
        )
        self.material_id = material_id
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error including the stock figures."""
        return {
            **super().to_dict(),
            "available": self.available,
            "requested": self.requested,
        }


class ConflictError(CMMSError):
    """Raised when an optimistic precondition fails on a concurrent write."""

    kind = "conflict"
    status_code = 409
