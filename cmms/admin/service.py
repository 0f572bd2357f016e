"""Account administration and dashboard statistics."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING

from cmms.auth.guard import is_allowed
from cmms.auth.permissions import apply_overrides, change_role, parse_overrides
from cmms.common import (
    AccountStatus,
    Action,
    Resource,
    Role,
    StockStatus,
    ValidationFailedError,
)
from cmms.common.models import Pagination
from cmms.notifications import NotificationEvent
from cmms.query.plan import Condition, QueryPlan, SortKey
from cmms.query.resolver import STOCK_STATUS_CONDITIONS, ListParams
from cmms.workitems import DefectStatus, TaskStatus

from .models import (
    DefectCounts,
    MaterialCounts,
    RecentActivity,
    Statistics,
    TaskCounts,
    UserCounts,
)

if TYPE_CHECKING:
    from cmms.auth import UserQueries
    from cmms.common import User
    from cmms.materials import MaterialService
    from cmms.notifications import NotificationDispatcher
    from cmms.query.resolver import ScopedQueryResolver
    from cmms.workitems import WorkItemService

    from .models import ApprovalRequest, UserUpdateRequest

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

ASSIGNABLE_ROLES = (Role.TECHNICIAN, Role.MANAGER)
RECENT_ITEMS = 5


class AdminService:
    """Account approval, account management and the dashboard."""

    def __init__(  # noqa: PLR0913
        self,
        user_queries: UserQueries,
        tasks: WorkItemService,
        defects: WorkItemService,
        materials: MaterialService,
        resolver: ScopedQueryResolver,
        notifications: NotificationDispatcher,
    ) -> None:
        """Create the service.

        :param user_queries: Account repository
        :param tasks: Task service, used for counts and assignment checks
        :param defects: Defect service, used for counts and assignment checks
        :param materials: Material catalogue, used for counts
        :param resolver: Resolver for account list queries
        :param notifications: Dispatcher for approval and rejection notifications
        """
        self.user_queries = user_queries
        self.tasks = tasks
        self.defects = defects
        self.materials = materials
        self.resolver = resolver
        self.notifications = notifications

    async def list_users(
        self,
        caller: User,
        params: ListParams,
    ) -> tuple[list[User], Pagination]:
        """List accounts matching the caller's parameters."""
        plan = self.resolver.resolve(caller, Resource.USERS, params)
        users, total = await self.user_queries.list_users(plan)
        return users, Pagination.of(plan.page, plan.limit, total)

    async def pending_users(self) -> list[User]:
        """Return accounts awaiting approval, oldest first."""
        users, _ = await self.user_queries.list_users(
            QueryPlan(
                conditions=(Condition.eq("status", AccountStatus.PENDING),),
                sort=(SortKey("created_at"), SortKey("id")),
            ),
        )
        return users

    async def _require_pending(self, user_id: str) -> User:
        user = await self.user_queries.require_user(user_id)
        if user.status != AccountStatus.PENDING:
            msg = "User is not awaiting approval"
            raise ValidationFailedError.single("status", msg)
        return user

    async def approve(self, caller: User, user_id: str, request: ApprovalRequest) -> User:
        """Activate a pending account with a role and optional overrides.

        :raises NotFoundError: If the account does not exist
        :raises ValidationFailedError: If the account is not pending or the
            overrides are malformed
        :raises ConflictError: If the account was decided concurrently
        """
        user = await self._require_pending(user_id)
        overrides = parse_overrides(request.permissions)

        user = change_role(user, request.role)
        if overrides:
            user = apply_overrides(user, overrides)
        user = dataclasses.replace(user, status=AccountStatus.ACTIVE)

        saved = await self.user_queries.save(
            user,
            precondition={"status": AccountStatus.PENDING},
        )
        LOGGER.info(
            "User %s approved as %s by %s",
            saved.email,
            saved.role,
            caller.email,
        )
        self.notifications.notify(NotificationEvent.ACCOUNT_APPROVED, saved)
        return saved

    async def reject(self, caller: User, user_id: str, reason: str | None) -> User:
        """Reject a pending account.

        :raises NotFoundError: If the account does not exist
        :raises ValidationFailedError: If the account is not pending
        :raises ConflictError: If the account was decided concurrently
        """
        user = await self._require_pending(user_id)
        saved = await self.user_queries.save(
            dataclasses.replace(user, status=AccountStatus.REJECTED),
            precondition={"status": AccountStatus.PENDING},
        )
        LOGGER.info("User %s rejected by %s", saved.email, caller.email)
        self.notifications.notify(
            NotificationEvent.ACCOUNT_REJECTED,
            saved,
            reason=reason,
        )
        return saved

    async def update_user(
        self,
        caller: User,
        user_id: str,
        request: UserUpdateRequest,
    ) -> User:
        """Change an account's role, status, overrides or contact details.

        :raises NotFoundError: If the account does not exist
        :raises ValidationFailedError: On malformed overrides or an active
            account without a role
        :raises ConflictError: If the role or status changed concurrently
        """
        loaded = await self.user_queries.require_user(user_id)
        user = loaded
        overrides = parse_overrides(request.permissions)

        if request.role is not None:
            user = change_role(user, request.role)
        if overrides:
            user = apply_overrides(user, overrides)
        if request.status is not None:
            user = dataclasses.replace(user, status=request.status)
        if user.status == AccountStatus.ACTIVE and user.role is None:
            msg = "An active account needs a role"
            raise ValidationFailedError.single("role", msg)

        contact = request.model_dump(include={"department", "phone"}, exclude_unset=True)
        if contact:
            user = dataclasses.replace(user, **contact)

        saved = await self.user_queries.save(
            user,
            precondition={"status": loaded.status, "role": loaded.role},
        )
        LOGGER.info("User %s updated by %s", saved.email, caller.email)
        return saved

    async def delete_user(self, caller: User, user_id: str) -> None:
        """Delete an account that holds no assigned work items.

        :raises NotFoundError: If the account does not exist
        :raises ValidationFailedError: If tasks or defects are assigned to it
        """
        user = await self.user_queries.require_user(user_id)
        tasks, defects = await asyncio.gather(
            self.tasks.count_assigned(user.id),
            self.defects.count_assigned(user.id),
        )
        if tasks or defects:
            msg = (
                f"User still has {tasks} assigned tasks and {defects} assigned "
                "defects"
            )
            raise ValidationFailedError.single("assignments", msg)

        await self.user_queries.delete(user.id)
        LOGGER.info("User %s deleted by %s", user.email, caller.email)

    async def technicians(self) -> list[User]:
        """Return the active accounts work items are usually assigned to."""
        users: list[User] = []
        for role in ASSIGNABLE_ROLES:
            found, _ = await self.user_queries.list_users(
                QueryPlan(
                    conditions=(
                        Condition.eq("role", role),
                        Condition.eq("status", AccountStatus.ACTIVE),
                    ),
                    sort=(SortKey("last_name"), SortKey("first_name"), SortKey("id")),
                ),
            )
            users.extend(found)
        return users

    async def _user_counts(self) -> UserCounts:
        store = self.user_queries.store
        total, pending, active = await asyncio.gather(
            store.count(),
            store.count((Condition.eq("status", AccountStatus.PENDING),)),
            store.count((Condition.eq("status", AccountStatus.ACTIVE),)),
        )
        return UserCounts(total=total, pending=pending, active=active)

    async def _task_counts(self, caller: User) -> TaskCounts:
        total, completed, new, in_progress = await asyncio.gather(
            self.tasks.count(caller),
            self.tasks.count(caller, Condition.eq("status", TaskStatus.COMPLETED)),
            self.tasks.count(caller, Condition.eq("status", TaskStatus.NEW)),
            self.tasks.count(caller, Condition.eq("status", TaskStatus.IN_PROGRESS)),
        )
        return TaskCounts(total=total, completed=completed, open=new + in_progress)

    async def _defect_counts(self, caller: User) -> DefectCounts:
        total, reported, in_progress = await asyncio.gather(
            self.defects.count(caller),
            self.defects.count(caller, Condition.eq("status", DefectStatus.REPORTED)),
            self.defects.count(caller, Condition.eq("status", DefectStatus.IN_PROGRESS)),
        )
        return DefectCounts(total=total, open=reported + in_progress)

    async def _material_counts(self) -> MaterialCounts:
        total, low = await asyncio.gather(
            self.materials.count(),
            self.materials.count(*STOCK_STATUS_CONDITIONS[StockStatus.LOW]),
        )
        return MaterialCounts(total=total, low_stock=low)

    async def statistics(self, caller: User) -> Statistics:
        """Count records per resource within the caller's visibility scope.

        Resources the caller may not view are left out.
        """
        statistics = Statistics()
        if is_allowed(caller, Resource.USERS, Action.VIEW):
            statistics.users = await self._user_counts()
        if is_allowed(caller, Resource.TASKS, Action.VIEW):
            statistics.tasks = await self._task_counts(caller)
        if is_allowed(caller, Resource.DEFECTS, Action.VIEW):
            statistics.defects = await self._defect_counts(caller)
        if is_allowed(caller, Resource.MATERIALS, Action.VIEW):
            statistics.materials = await self._material_counts()
        return statistics

    async def recent_activity(self, caller: User) -> RecentActivity:
        """Return the newest work items the caller can see."""
        activity = RecentActivity()
        params = ListParams(limit=RECENT_ITEMS)
        if is_allowed(caller, Resource.TASKS, Action.VIEW):
            tasks, _ = await self.tasks.list_items(caller, params)
            activity.tasks = [task.model_dump(mode="json") for task in tasks]
        if is_allowed(caller, Resource.DEFECTS, Action.VIEW):
            defects, _ = await self.defects.list_items(caller, params)
            activity.defects = [defect.model_dump(mode="json") for defect in defects]
        return activity
