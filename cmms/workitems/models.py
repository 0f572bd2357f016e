"""Models for tasks, defects and their request payloads."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from pydantic import BaseModel, Field

from cmms.common.models import Pagination, RequestModel

if TYPE_CHECKING:
    from cmms.common import User
    from cmms.materials import Material


class Priority(StrEnum):
    """Urgency of a work item."""

    LOW = "niski"
    MEDIUM = "średni"
    HIGH = "wysoki"
    CRITICAL = "krytyczny"


class TaskStatus(StrEnum):
    """Task states."""

    NEW = "nowe"
    IN_PROGRESS = "w_trakcie"
    COMPLETED = "zakończone"
    CANCELLED = "anulowane"


class DefectStatus(StrEnum):
    """Defect states."""

    REPORTED = "zgłoszona"
    IN_PROGRESS = "w_trakcie"
    RESOLVED = "usunięta"
    REJECTED = "odrzucona"


class TaskType(StrEnum):
    """Schedule a task belongs to."""

    DAILY = "dzienna"
    NIGHTLY = "nocna"
    WEEKLY = "tygodniowa"
    MONTHLY = "miesięczna"
    EMERGENCY = "awaryjna"


class DefectCategory(StrEnum):
    """Kind of installation a defect affects."""

    MECHANICAL = "mechaniczna"
    ELECTRICAL = "elektryczna"
    HYDRAULIC = "hydrauliczna"
    PNEUMATIC = "pneumatyczna"
    OTHER = "inne"


class TaskLineItem(RequestModel):
    """Material planned for a task and how much of it was used."""

    material_id: str
    quantity: int = Field(gt=0)
    used: int = Field(default=0, ge=0)


class DefectLineItem(RequestModel):
    """Material needed for a repair and its cost."""

    material_id: str
    quantity: int = Field(gt=0)
    cost: float = Field(default=0, ge=0)


class Task(BaseModel):
    """A stored task."""

    id: str
    title: str
    description: str
    type: TaskType
    priority: Priority
    status: TaskStatus
    assigned_to: str | None = None
    created_by: str
    location: str | None = None
    estimated_duration: int | None = None
    actual_duration: int | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    remarks: str | None = None
    materials: list[TaskLineItem] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = 1


class Defect(BaseModel):
    """A stored defect report."""

    id: str
    title: str
    description: str
    location: str
    priority: Priority
    status: DefectStatus
    category: DefectCategory
    reported_by: str
    assigned_to: str | None = None
    estimated_cost: float | None = None
    actual_cost: float | None = None
    estimated_repair_time: float | None = None
    actual_repair_time: float | None = None
    repair_date: datetime | None = None
    completed_at: datetime | None = None
    remarks: str | None = None
    materials: list[DefectLineItem] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = 1


class PersonSummary(BaseModel):
    """Short description of a referenced user."""

    id: str
    first_name: str
    last_name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> PersonSummary:
        """Create a summary from a User."""
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
        )


class MaterialSummary(BaseModel):
    """Short description of a referenced material, removed ones included."""

    id: str
    name: str
    unit: str
    unit_price: float
    is_active: bool

    @classmethod
    def from_material(cls, material: Material) -> MaterialSummary:
        """Create a summary from a Material."""
        return cls(
            id=material.id,
            name=material.name,
            unit=material.unit,
            unit_price=material.unit_price,
            is_active=material.is_active,
        )


class References(BaseModel):
    """Users and materials a work item points at."""

    assignee: PersonSummary | None = None
    creator: PersonSummary | None = None
    material_refs: dict[str, MaterialSummary] = Field(default_factory=dict)


class TaskView(Task, References):
    """A task with its references resolved."""


class DefectView(Defect, References):
    """A defect with its references resolved."""


class TaskCreate(RequestModel):
    """Payload for creating a task. New tasks start unassigned as ``nowe``."""

    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10)
    type: TaskType
    priority: Priority = Priority.MEDIUM
    location: str | None = None
    estimated_duration: int | None = Field(default=60, ge=0)
    due_date: datetime | None = None
    remarks: str | None = None
    materials: list[TaskLineItem] = Field(default_factory=list)


class TaskUpdate(RequestModel):
    """Payload for updating a task.

    ``status`` is checked against the task lifecycle. The assignee and the
    completion time are not writable here.
    """

    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, min_length=10)
    type: TaskType | None = None
    priority: Priority | None = None
    status: str | None = None
    location: str | None = None
    estimated_duration: int | None = Field(default=None, ge=0)
    actual_duration: int | None = Field(default=None, ge=0)
    due_date: datetime | None = None
    remarks: str | None = None
    materials: list[TaskLineItem] | None = None


class DefectCreate(RequestModel):
    """Payload for reporting a defect. New defects start unassigned as ``zgłoszona``."""

    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10)
    location: str = Field(min_length=2)
    category: DefectCategory
    priority: Priority = Priority.MEDIUM
    estimated_cost: float | None = Field(default=None, ge=0)
    estimated_repair_time: float | None = Field(default=None, ge=0)
    repair_date: datetime | None = None
    remarks: str | None = None
    materials: list[DefectLineItem] = Field(default_factory=list)


class DefectUpdate(RequestModel):
    """Payload for updating a defect.

    ``status`` is checked against the defect lifecycle. The assignee and the
    completion time are not writable here.
    """

    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, min_length=10)
    location: str | None = Field(default=None, min_length=2)
    category: DefectCategory | None = None
    priority: Priority | None = None
    status: str | None = None
    estimated_cost: float | None = Field(default=None, ge=0)
    actual_cost: float | None = Field(default=None, ge=0)
    estimated_repair_time: float | None = Field(default=None, ge=0)
    actual_repair_time: float | None = Field(default=None, ge=0)
    repair_date: datetime | None = None
    remarks: str | None = None
    materials: list[DefectLineItem] | None = None


class AssignRequest(RequestModel):
    """Payload for assigning a work item."""

    assigned_to: str = Field(min_length=1)


ViewT = TypeVar("ViewT", bound=BaseModel)


class ItemList(BaseModel, Generic[ViewT]):
    """One page of work items."""

    items: list[ViewT]
    pagination: Pagination


class ItemResponse(BaseModel, Generic[ViewT]):
    """A single work item with a confirmation message."""

    message: str | None = None
    item: ViewT
