"""Shared vocabulary: users, roles, resources and error kinds."""

from .errors import (
    AccountInactiveError,
    CMMSError,
    ConflictError,
    FieldError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    UnauthenticatedError,
    ValidationFailedError,
)
from .stock import StockStatus, stock_status
from .user import AccountStatus, Action, PermissionOverrides, Resource, Role, User

__all__ = [
    "AccountInactiveError",
    "AccountStatus",
    "Action",
    "CMMSError",
    "ConflictError",
    "FieldError",
    "ForbiddenError",
    "InsufficientStockError",
    "NotFoundError",
    "PermissionOverrides",
    "Resource",
    "Role",
    "StockStatus",
    "UnauthenticatedError",
    "User",
    "ValidationFailedError",
    "stock_status",
]
