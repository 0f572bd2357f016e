"""Task and defect routes.

Both kinds expose the same endpoints; ``configure_work_item_router`` builds
them for one ``WorkItemService``.
"""

import logging
from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from cmms.auth import Validate
from cmms.common import Action, User
from cmms.common.models import MessageResponse
from cmms.query import SortOrder
from cmms.query.resolver import ListParams

from .models import (
    AssignRequest,
    DefectCategory,
    DefectCreate,
    DefectUpdate,
    ItemList,
    ItemResponse,
    Priority,
    TaskCreate,
    TaskType,
    TaskUpdate,
)
from .service import WorkItemService

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


def task_list_params(  # noqa: PLR0913
    status: str | None = None,
    type: TaskType | None = None,  # noqa: A002
    priority: Priority | None = None,
    assigned_to: Annotated[str | None, Query(alias="assignedTo")] = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    sort_order: Annotated[SortOrder | None, Query(alias="sortOrder")] = None,
) -> ListParams:
    """Collect the task list query string into ListParams."""
    return ListParams(
        status=status,
        type=type,
        priority=priority,
        assigned_to=assigned_to,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def defect_list_params(  # noqa: PLR0913
    status: str | None = None,
    category: DefectCategory | None = None,
    priority: Priority | None = None,
    assigned_to: Annotated[str | None, Query(alias="assignedTo")] = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    sort_order: Annotated[SortOrder | None, Query(alias="sortOrder")] = None,
) -> ListParams:
    """Collect the defect list query string into ListParams."""
    return ListParams(
        status=status,
        category=category,
        priority=priority,
        assigned_to=assigned_to,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def configure_work_item_router(  # noqa: PLR0913
    router: APIRouter,
    validate: Validate,
    service: WorkItemService,
    list_params: Callable[..., ListParams],
    create_model: type[BaseModel],
    update_model: type[BaseModel],
) -> APIRouter:
    """Configure the router of one work item kind.

    :param router: The APIRouter to configure
    :param validate: Validator dependencies
    :param service: Service of the kind
    :param list_params: Dependency collecting list query parameters
    :param create_model: Payload model for creation
    :param update_model: Payload model for updates
    :return: The configured APIRouter
    """
    resource = service.resource
    label = service.kind.label
    view_model = service.kind.view_model

    can_view = validate.permission(resource, Action.VIEW)
    can_create = validate.permission(resource, Action.CREATE)
    can_edit = validate.permission(resource, Action.EDIT)
    can_delete = validate.permission(resource, Action.DELETE)

    @router.get("", response_model=ItemList[view_model])
    async def list_items(
        user: Annotated[User, Depends(can_view)],
        params: Annotated[ListParams, Depends(list_params)],
    ) -> ItemList:
        items, pagination = await service.list_items(user, params)
        return ItemList[view_model](items=items, pagination=pagination)

    @router.get("/{item_id}", response_model=ItemResponse[view_model])
    async def get_item(
        item_id: str,
        user: Annotated[User, Depends(can_view)],
    ) -> ItemResponse:
        return ItemResponse[view_model](item=await service.get(user, item_id))

    @router.post(
        "",
        response_model=ItemResponse[view_model],
        status_code=status.HTTP_201_CREATED,
    )
    async def create_item(
        payload: create_model,
        user: Annotated[User, Depends(can_create)],
    ) -> ItemResponse:
        item = await service.create(user, payload)
        return ItemResponse[view_model](message=f"{label} created", item=item)

    @router.put("/{item_id}", response_model=ItemResponse[view_model])
    async def update_item(
        item_id: str,
        payload: update_model,
        user: Annotated[User, Depends(can_edit)],
    ) -> ItemResponse:
        item = await service.update(user, item_id, payload)
        return ItemResponse[view_model](message=f"{label} updated", item=item)

    @router.delete("/{item_id}", response_model=MessageResponse)
    async def delete_item(
        item_id: str,
        user: Annotated[User, Depends(can_delete)],
    ) -> MessageResponse:
        await service.delete(user, item_id)
        return MessageResponse(message=f"{label} deleted")

    @router.post("/{item_id}/assign", response_model=ItemResponse[view_model])
    async def assign_item(
        item_id: str,
        request: AssignRequest,
        user: Annotated[User, Depends(validate.current_user)],
    ) -> ItemResponse:
        item = await service.assign(user, item_id, request.assigned_to)
        return ItemResponse[view_model](message=f"{label} assigned", item=item)

    return router


def configure_task_router(
    router: APIRouter,
    validate: Validate,
    service: WorkItemService,
) -> APIRouter:
    """Configure the task router."""
    return configure_work_item_router(
        router,
        validate,
        service,
        task_list_params,
        TaskCreate,
        TaskUpdate,
    )


def configure_defect_router(
    router: APIRouter,
    validate: Validate,
    service: WorkItemService,
) -> APIRouter:
    """Configure the defect router."""
    return configure_work_item_router(
        router,
        validate,
        service,
        defect_list_params,
        DefectCreate,
        DefectUpdate,
    )
