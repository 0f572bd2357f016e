"""Administration routes: accounts, technicians and the dashboard."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from cmms.auth import Validate
from cmms.auth.models import UserResponse
from cmms.common import AccountStatus, Action, Resource, Role, User
from cmms.common.models import MessageResponse
from cmms.query import SortOrder
from cmms.query.resolver import ListParams

from .models import (
    ApprovalRequest,
    Dashboard,
    RejectionRequest,
    TechnicianList,
    UserEnvelope,
    UserList,
    UserUpdateRequest,
)
from .service import AdminService

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


def user_list_params(  # noqa: PLR0913
    status: AccountStatus | None = None,
    role: Role | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    sort_order: Annotated[SortOrder | None, Query(alias="sortOrder")] = None,
) -> ListParams:
    """Collect the account list query string into ListParams."""
    return ListParams(
        status=status,
        role=role,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def configure_admin_router(
    router: APIRouter,
    validate: Validate,
    admin: AdminService,
) -> APIRouter:
    """Configure the administration router.

    :param router: The APIRouter to configure
    :param validate: Validator dependencies
    :param admin: Administration service
    :return: The configured APIRouter
    """
    can_view_users = validate.permission(Resource.USERS, Action.VIEW)
    can_edit_users = validate.permission(Resource.USERS, Action.EDIT)
    can_delete_users = validate.permission(Resource.USERS, Action.DELETE)
    can_view_reports = validate.permission(Resource.REPORTS, Action.VIEW)

    @router.get("/dashboard", response_model=Dashboard)
    async def dashboard(
        user: Annotated[User, Depends(can_view_reports)],
    ) -> Dashboard:
        return Dashboard(
            statistics=await admin.statistics(user),
            recent_activities=await admin.recent_activity(user),
        )

    @router.get("/users", response_model=UserList)
    async def list_users(
        user: Annotated[User, Depends(can_view_users)],
        params: Annotated[ListParams, Depends(user_list_params)],
    ) -> UserList:
        users, pagination = await admin.list_users(user, params)
        return UserList(
            users=[UserResponse.from_user(found) for found in users],
            pagination=pagination,
        )

    @router.get("/users/pending", response_model=list[UserResponse])
    async def list_pending_users(
        _user: Annotated[User, Depends(can_view_users)],
    ) -> list[UserResponse]:
        return [UserResponse.from_user(found) for found in await admin.pending_users()]

    @router.post("/users/{user_id}/approve", response_model=UserEnvelope)
    async def approve_user(
        user_id: str,
        request: ApprovalRequest,
        user: Annotated[User, Depends(can_edit_users)],
    ) -> UserEnvelope:
        approved = await admin.approve(user, user_id, request)
        return UserEnvelope(
            message="User approved",
            user=UserResponse.from_user(approved),
        )

    @router.post("/users/{user_id}/reject", response_model=UserEnvelope)
    async def reject_user(
        user_id: str,
        request: RejectionRequest,
        user: Annotated[User, Depends(can_edit_users)],
    ) -> UserEnvelope:
        rejected = await admin.reject(user, user_id, request.reason)
        return UserEnvelope(
            message="User rejected",
            user=UserResponse.from_user(rejected),
        )

    @router.put("/users/{user_id}", response_model=UserEnvelope)
    async def update_user(
        user_id: str,
        request: UserUpdateRequest,
        user: Annotated[User, Depends(can_edit_users)],
    ) -> UserEnvelope:
        updated = await admin.update_user(user, user_id, request)
        return UserEnvelope(
            message="User updated",
            user=UserResponse.from_user(updated),
        )

    @router.delete("/users/{user_id}", response_model=MessageResponse)
    async def delete_user(
        user_id: str,
        user: Annotated[User, Depends(can_delete_users)],
    ) -> MessageResponse:
        await admin.delete_user(user, user_id)
        return MessageResponse(message="User deleted")

    @router.get("/technicians", response_model=TechnicianList)
    async def list_technicians(
        _user: Annotated[User, Depends(can_view_users)],
    ) -> TechnicianList:
        return TechnicianList(
            technicians=[UserResponse.from_user(found) for found in await admin.technicians()],
        )

    return router
