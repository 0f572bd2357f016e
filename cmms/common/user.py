"""Fundamental user data model for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from datetime import datetime


class Role(StrEnum):
    """Roles a user account can be approved with."""

    ADMIN = "admin"
    MANAGER = "manager"
    TECHNICIAN = "technician"
    OPERATOR = "operator"


class AccountStatus(StrEnum):
    """Account lifecycle. Only active accounts are honoured by the guard."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class Resource(StrEnum):
    """Resources covered by the permission grid."""

    TASKS = "tasks"
    DEFECTS = "defects"
    MATERIALS = "materials"
    USERS = "users"
    REPORTS = "reports"


class Action(StrEnum):
    """Actions that can be granted on a resource."""

    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    ASSIGN = "assign"


PermissionOverrides: TypeAlias = dict[Resource, dict[Action, bool]]


@dataclass
class User:
    """Data structure representing an account.

    :param id: Opaque user identifier
    :param email: Lower-cased login email
    :param role: Assigned role, None until the account is approved
    :param status: Account status
    :param overrides: Per-user grants and revocations layered on the role grid
    """

    id: str
    email: str
    role: Role | None
    status: AccountStatus
    first_name: str = ""
    last_name: str = ""
    overrides: PermissionOverrides = field(default_factory=dict)
    department: str | None = None
    phone: str | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None

    @property
    def full_name(self) -> str:
        """Return the display name of the user."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        """Return True if the account may act at all."""
        return self.status == AccountStatus.ACTIVE
