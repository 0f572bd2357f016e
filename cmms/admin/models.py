"""Models for account administration and the dashboard."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from cmms.auth.models import UserResponse
from cmms.common import AccountStatus, Role
from cmms.common.models import Pagination, RequestModel

RawOverrides = dict[str, dict[str, Any]]


class ApprovalRequest(RequestModel):
    """Payload for approving a pending account.

    :param role: Role granted on approval
    :param permissions: Optional overrides merged on top of the role defaults
    """

    role: Role = Role.OPERATOR
    permissions: RawOverrides | None = None


class RejectionRequest(RequestModel):
    """Payload for rejecting a pending account."""

    reason: str | None = Field(default=None, max_length=1000)


class UserUpdateRequest(RequestModel):
    """Payload for changing an account.

    A role change discards all existing overrides before ``permissions`` is
    applied.
    """

    role: Role | None = None
    status: AccountStatus | None = None
    permissions: RawOverrides | None = None
    department: str | None = None
    phone: str | None = None


class UserList(BaseModel):
    """One page of accounts."""

    users: list[UserResponse]
    pagination: Pagination


class UserEnvelope(BaseModel):
    """A single account with a confirmation message."""

    message: str
    user: UserResponse


class TechnicianList(BaseModel):
    """Active accounts work items can be assigned to."""

    technicians: list[UserResponse]


class UserCounts(BaseModel):
    """Account counts."""

    total: int
    pending: int
    active: int


class TaskCounts(BaseModel):
    """Task counts within the caller's scope."""

    total: int
    completed: int
    open: int


class DefectCounts(BaseModel):
    """Defect counts within the caller's scope."""

    total: int
    open: int


class MaterialCounts(BaseModel):
    """Active material counts."""

    total: int
    low_stock: int


class Statistics(BaseModel):
    """Counts per resource, None where the caller may not view the resource."""

    users: UserCounts | None = None
    tasks: TaskCounts | None = None
    defects: DefectCounts | None = None
    materials: MaterialCounts | None = None


class RecentActivity(BaseModel):
    """Newest work items within the caller's scope."""

    tasks: list[dict[str, Any]] = Field(default_factory=list)
    defects: list[dict[str, Any]] = Field(default_factory=list)


class Dashboard(BaseModel):
    """Dashboard summary."""

    statistics: Statistics
    recent_activities: RecentActivity
