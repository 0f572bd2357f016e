"""Task and defect operations.

One ``WorkItemService`` serves both kinds; a ``WorkItemKind`` carries what
differs between them. Every operation first checks the caller's permission
grid. An operation on an existing item then loads it, checks it against the
caller's visibility scope and ownership rules, evaluates the change through
the lifecycle and writes it with a ``version`` precondition, so a concurrent
change surfaces as ``ConflictError`` instead of being lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from cmms.auth.guard import authorize, authorize_record, check_visible
from cmms.common import (
    Action,
    NotFoundError,
    Resource,
    ValidationFailedError,
)
from cmms.common.models import Pagination
from cmms.notifications import NotificationEvent
from cmms.query.plan import Condition

from .lifecycle import (
    DEFECT_LIFECYCLE,
    TASK_LIFECYCLE,
    LifecycleVariant,
    Transition,
    evaluate_assign,
    evaluate_update,
)
from .models import (
    Defect,
    DefectView,
    MaterialSummary,
    PersonSummary,
    Task,
    TaskView,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cmms.auth import UserQueries
    from cmms.common import User
    from cmms.materials import MaterialService
    from cmms.notifications import NotificationDispatcher
    from cmms.query.resolver import ListParams, ScopedQueryResolver
    from cmms.store import RecordStore

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


@dataclass(frozen=True)
class WorkItemKind:
    """What differs between tasks and defects.

    :param resource: Resource name in the permission grid
    :param label: Human readable name used in messages
    :param lifecycle: Status labels and completion rules
    :param record_model: Model of a stored item
    :param view_model: Model of an item with resolved references
    :param creator_field: Column holding the creating user
    :param assign_action: Grid action required to assign
    :param required_fields: Columns an update may not clear
    """

    resource: Resource
    label: str
    lifecycle: LifecycleVariant
    record_model: type[Task] | type[Defect]
    view_model: type[TaskView] | type[DefectView]
    creator_field: str
    assign_action: Action
    required_fields: frozenset[str] = field(default_factory=frozenset)


TASK_KIND = WorkItemKind(
    resource=Resource.TASKS,
    label="Task",
    lifecycle=TASK_LIFECYCLE,
    record_model=Task,
    view_model=TaskView,
    creator_field="created_by",
    assign_action=Action.ASSIGN,
    required_fields=frozenset({"title", "description", "type", "priority", "status"}),
)

# the default grids give nobody but admins defects.assign, so assignment of
# defects is gated on edit and left to the ownership rules
DEFECT_KIND = WorkItemKind(
    resource=Resource.DEFECTS,
    label="Defect",
    lifecycle=DEFECT_LIFECYCLE,
    record_model=Defect,
    view_model=DefectView,
    creator_field="reported_by",
    assign_action=Action.EDIT,
    required_fields=frozenset(
        {"title", "description", "location", "category", "priority", "status"},
    ),
)


class WorkItemService:
    """Operations on one kind of work item."""

    def __init__(  # noqa: PLR0913
        self,
        kind: WorkItemKind,
        store: RecordStore,
        user_queries: UserQueries,
        materials: MaterialService,
        resolver: ScopedQueryResolver,
        notifications: NotificationDispatcher,
    ) -> None:
        """Create the service.

        :param kind: Which kind of work item this service handles
        :param store: Record store of the kind's collection
        :param user_queries: Account repository for assignee and creator lookups
        :param materials: Material catalogue for line items
        :param resolver: Resolver for list queries
        :param notifications: Dispatcher for assignment notifications
        """
        self.kind = kind
        self.store = store
        self.user_queries = user_queries
        self.materials = materials
        self.resolver = resolver
        self.notifications = notifications

    @property
    def resource(self) -> Resource:
        """Return the resource name of the kind."""
        return self.kind.resource

    def _not_found(self) -> NotFoundError:
        return NotFoundError(f"{self.kind.label} does not exist")

    async def _views(self, items: list[Task] | list[Defect]) -> list[BaseModel]:
        """Resolve assignees, creators and line item materials for items."""
        user_ids = set()
        material_ids = set()
        for item in items:
            user_ids.add(getattr(item, self.kind.creator_field))
            if item.assigned_to is not None:
                user_ids.add(item.assigned_to)
            material_ids.update(line.material_id for line in item.materials)

        users = await self.user_queries.get_users(user_ids)
        materials = await self.materials.resolve(material_ids)

        views = []
        for item in items:
            creator = users.get(getattr(item, self.kind.creator_field))
            assignee = users.get(item.assigned_to) if item.assigned_to else None
            views.append(
                self.kind.view_model.model_validate(
                    {
                        **item.model_dump(),
                        "creator": PersonSummary.from_user(creator) if creator else None,
                        "assignee": (
                            PersonSummary.from_user(assignee) if assignee else None
                        ),
                        "material_refs": {
                            line.material_id: MaterialSummary.from_material(
                                materials[line.material_id],
                            )
                            for line in item.materials
                            if line.material_id in materials
                        },
                    },
                ),
            )
        return views

    async def _view(self, item: Task | Defect) -> BaseModel:
        views = await self._views([item])
        return views[0]

    async def _load(self, user: User, item_id: str) -> Task | Defect:
        """Load an item the caller can see.

        :raises NotFoundError: If the item is absent or outside the caller's scope
        """
        record = await self.store.find_by_id(item_id)
        if record is None:
            raise self._not_found()
        item = self.kind.record_model.model_validate(record)
        check_visible(user, self.resource, item, self.kind.label)
        return item

    async def _check_materials(self, lines: Iterable[dict[str, Any]]) -> None:
        await self.materials.require_active(
            (line["material_id"] for line in lines),
            "materials",
        )

    async def _write(self, item: Task | Defect, transition: Transition) -> Task | Defect:
        patch = {**transition.patch, "version": item.version + 1}
        record = await self.store.conditional_update(
            item.id,
            {"version": item.version},
            patch,
        )
        return self.kind.record_model.model_validate(record)

    async def list_items(
        self,
        user: User,
        params: ListParams,
    ) -> tuple[list[BaseModel], Pagination]:
        """List the items the caller can see that match the parameters."""
        authorize(user, self.resource, Action.VIEW)
        plan = self.resolver.resolve(user, self.resource, params)
        records, total = await self.store.find(plan)
        items = [self.kind.record_model.model_validate(record) for record in records]
        return await self._views(items), Pagination.of(plan.page, plan.limit, total)

    async def count(self, user: User, *conditions: Condition) -> int:
        """Count the items the caller can see that satisfy the conditions."""
        scope = self.resolver.scope_conditions(user, self.resource)
        return await self.store.count((*scope, *conditions))

    async def count_assigned(self, user_id: str) -> int:
        """Count items assigned to a user, regardless of status."""
        return await self.store.count((Condition.eq("assigned_to", user_id),))

    async def get(self, user: User, item_id: str) -> BaseModel:
        """Return one item the caller can see.

        :raises NotFoundError: If the item is absent or outside the caller's scope
        """
        authorize(user, self.resource, Action.VIEW)
        return await self._view(await self._load(user, item_id))

    async def create(self, user: User, payload: BaseModel) -> BaseModel:
        """Create an unassigned item in the initial state, owned by the caller.

        :raises ForbiddenError: If the caller may not create items of this kind
        :raises ValidationFailedError: If a line item references an unknown material
        """
        authorize(user, self.resource, Action.CREATE)
        values = payload.model_dump(mode="json")
        await self._check_materials(values.get("materials", []))

        now = datetime.now(UTC)
        item_id = await self.store.insert(
            {
                **values,
                self.kind.creator_field: user.id,
                "status": self.kind.lifecycle.initial,
                "assigned_to": None,
                "completed_at": None,
                "created_at": now,
                "updated_at": now,
                "version": 1,
            },
        )
        LOGGER.info("%s %s created by %s", self.kind.label, item_id, user.email)

        # returned even when the creator's scope would hide it
        record = await self.store.find_by_id(item_id)
        if record is None:
            raise self._not_found()
        return await self._view(self.kind.record_model.model_validate(record))

    async def update(
        self,
        user: User,
        item_id: str,
        payload: BaseModel,
    ) -> BaseModel:
        """Apply an editor's changes to an item.

        :raises NotFoundError: If the item is absent or outside the caller's scope
        :raises ForbiddenError: If the grid or the ownership rule denies the edit
        :raises ValidationFailedError: For an unknown status or material
        :raises ConflictError: If the item changed since it was loaded
        """
        authorize(user, self.resource, Action.EDIT)
        item = await self._load(user, item_id)
        authorize_record(user, self.resource, Action.EDIT, item, self.kind.label)

        changes = {
            name: value
            for name, value in payload.model_dump(mode="json", exclude_unset=True).items()
            if value is not None or name not in self.kind.required_fields
        }
        if changes.get("materials"):
            await self._check_materials(changes["materials"])
        if "materials" in changes and changes["materials"] is None:
            changes["materials"] = []

        transition = evaluate_update(
            self.kind.lifecycle,
            item,
            changes,
            datetime.now(UTC),
        )
        updated = await self._write(item, transition)
        if transition.stamp_completed:
            LOGGER.info("%s %s completed", self.kind.label, item.id)
        return await self._view(updated)

    async def assign(self, user: User, item_id: str, assignee_id: str) -> BaseModel:
        """Assign an item to an active user and move it to the in-progress state.

        :raises NotFoundError: If the item is absent or outside the caller's scope
        :raises ForbiddenError: If the caller may not assign this item
        :raises ValidationFailedError: If the assignee is not an active user
        :raises ConflictError: If the item changed since it was loaded
        """
        authorize(user, self.resource, self.kind.assign_action)
        item = await self._load(user, item_id)
        authorize_record(user, self.resource, Action.ASSIGN, item, self.kind.label)

        assignee = await self.user_queries.get_user(assignee_id)
        if assignee is None or not assignee.is_active:
            msg = "Assignee must be an active user"
            raise ValidationFailedError.single("assigned_to", msg)

        transition = evaluate_assign(
            self.kind.lifecycle,
            item,
            assignee.id,
            datetime.now(UTC),
        )
        updated = await self._write(item, transition)
        LOGGER.info(
            "%s %s assigned to %s by %s",
            self.kind.label,
            item.id,
            assignee.email,
            user.email,
        )
        self.notifications.notify(
            NotificationEvent.WORK_ITEM_ASSIGNED,
            assignee,
            resource=str(self.resource),
            item_id=item.id,
            title=item.title,
        )
        return await self._view(updated)

    async def delete(self, user: User, item_id: str) -> None:
        """Delete an item.

        :raises NotFoundError: If the item is absent or outside the caller's scope
        :raises ForbiddenError: If the grid or the ownership rule denies the deletion
        """
        authorize(user, self.resource, Action.DELETE)
        item = await self._load(user, item_id)
        authorize_record(user, self.resource, Action.DELETE, item, self.kind.label)
        if await self.store.delete(item.id) == 0:
            raise self._not_found()
        LOGGER.info("%s %s deleted by %s", self.kind.label, item.id, user.email)
