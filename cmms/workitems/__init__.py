"""Tasks and defects: models, lifecycle, service and routes."""

from .lifecycle import (
    DEFECT_LIFECYCLE,
    TASK_LIFECYCLE,
    LifecycleVariant,
    Transition,
    evaluate_assign,
    evaluate_update,
)
from .models import DefectStatus, Priority, TaskStatus
from .routes import configure_defect_router, configure_task_router
from .service import DEFECT_KIND, TASK_KIND, WorkItemKind, WorkItemService

__all__ = [
    "DEFECT_KIND",
    "DEFECT_LIFECYCLE",
    "TASK_KIND",
    "TASK_LIFECYCLE",
    "DefectStatus",
    "LifecycleVariant",
    "Priority",
    "TaskStatus",
    "Transition",
    "WorkItemKind",
    "WorkItemService",
    "configure_defect_router",
    "configure_task_router",
    "evaluate_assign",
    "evaluate_update",
]
