"""Work item lifecycle.

Tasks and defects share one state machine shape with different labels::

    task:   nowe -> w_trakcie -> zakończone, anulowane from nowe or w_trakcie
    defect: zgłoszona -> w_trakcie -> usunięta, odrzucona from zgłoszona

Any label of the variant may be written by an editor; the graph above is
kept for reference and off-graph writes are only logged. Entering the
completed state for the first time stamps ``completed_at``, which is never
overwritten or cleared afterwards. Assigning forces the in-progress state,
reopening finished items.

The evaluators are pure: they take the stored item and the requested change
and return the patch to persist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cmms.common import ValidationFailedError

from .models import DefectStatus, TaskStatus

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from .models import Defect, Task

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


@dataclass(frozen=True)
class LifecycleVariant:
    """Labels and reference graph of one work item kind.

    :param name: Kind name used in log messages
    :param statuses: Every label the kind accepts
    :param initial: Label of new items
    :param in_progress: Label forced by assignment
    :param completed: Label whose first entry stamps ``completed_at``
    :param terminal: Labels with no documented way out
    :param transitions: Documented successors of each label
    """

    name: str
    statuses: tuple[str, ...]
    initial: str
    in_progress: str
    completed: str
    terminal: frozenset[str]
    transitions: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def validate_status(self, status: str) -> str:
        """Return the status if the variant knows it.

        :raises ValidationFailedError: For a label outside the variant
        """
        if status not in self.statuses:
            msg = f"Status must be one of: {', '.join(self.statuses)}"
            raise ValidationFailedError.single("status", msg)
        return status

    def is_documented(self, current: str, target: str) -> bool:
        """Return True if the reference graph has an edge from current to target."""
        return current == target or target in self.transitions.get(current, frozenset())


TASK_LIFECYCLE = LifecycleVariant(
    name="task",
    statuses=tuple(TaskStatus),
    initial=TaskStatus.NEW,
    in_progress=TaskStatus.IN_PROGRESS,
    completed=TaskStatus.COMPLETED,
    terminal=frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    transitions={
        TaskStatus.NEW: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
        TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    },
)

DEFECT_LIFECYCLE = LifecycleVariant(
    name="defect",
    statuses=tuple(DefectStatus),
    initial=DefectStatus.REPORTED,
    in_progress=DefectStatus.IN_PROGRESS,
    completed=DefectStatus.RESOLVED,
    terminal=frozenset({DefectStatus.RESOLVED, DefectStatus.REJECTED}),
    transitions={
        DefectStatus.REPORTED: frozenset({DefectStatus.IN_PROGRESS, DefectStatus.REJECTED}),
        DefectStatus.IN_PROGRESS: frozenset({DefectStatus.RESOLVED}),
    },
)


@dataclass(frozen=True)
class Transition:
    """Result of evaluating a change.

    :param patch: Column values to persist
    :param stamp_completed: Whether this change stamps ``completed_at``
    """

    patch: dict[str, Any]
    stamp_completed: bool = False


def evaluate_update(
    variant: LifecycleVariant,
    item: Task | Defect,
    changes: Mapping[str, Any],
    now: datetime,
) -> Transition:
    """Evaluate an editor's update of a stored item.

    :param variant: Lifecycle of the item's kind
    :param item: The item as currently stored
    :param changes: Requested column values
    :param now: Time of the update
    :raises ValidationFailedError: For a status outside the variant
    """
    patch = {
        name: value
        for name, value in changes.items()
        if name not in {"completed_at", "assigned_to"}
    }

    status = patch.get("status")
    if status is not None:
        patch["status"] = variant.validate_status(status)
        if not variant.is_documented(item.status, status):
            LOGGER.debug(
                "Off-graph %s status change %s -> %s on %s",
                variant.name,
                item.status,
                status,
                item.id,
            )

    stamp = status == variant.completed and item.completed_at is None
    if stamp:
        patch["completed_at"] = now
    patch["updated_at"] = now
    return Transition(patch, stamp_completed=stamp)


def evaluate_assign(
    variant: LifecycleVariant,
    item: Task | Defect,
    assignee_id: str,
    now: datetime,
) -> Transition:
    """Evaluate an assignment: set the assignee and force the in-progress state."""
    if item.status != variant.in_progress:
        LOGGER.debug(
            "Assignment moves %s %s from %s to %s",
            variant.name,
            item.id,
            item.status,
            variant.in_progress,
        )
    return Transition(
        {
            "assigned_to": assignee_id,
            "status": variant.in_progress,
            "updated_at": now,
        },
    )
