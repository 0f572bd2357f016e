"""Material catalogue and stock routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from cmms.auth import Validate
from cmms.common import Action, Resource, StockStatus, User
from cmms.common.models import MessageResponse
from cmms.query import SortOrder
from cmms.query.resolver import ListParams

from .models import (
    CategoryList,
    MaterialCreate,
    MaterialList,
    MaterialResponse,
    MaterialUpdate,
    StockAdjustment,
)
from .service import MaterialService

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


def material_list_params(  # noqa: PLR0913
    category: str | None = None,
    stock_status: Annotated[StockStatus | None, Query(alias="stockStatus")] = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    sort_order: Annotated[SortOrder | None, Query(alias="sortOrder")] = None,
) -> ListParams:
    """Collect the material list query string into ListParams."""
    return ListParams(
        category=category,
        stock_status=stock_status,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def configure_material_router(
    router: APIRouter,
    validate: Validate,
    materials: MaterialService,
) -> APIRouter:
    """Configure the material router.

    :param router: The APIRouter to configure
    :param validate: Validator dependencies
    :param materials: Material catalogue service
    :return: The configured APIRouter
    """
    can_view = validate.permission(Resource.MATERIALS, Action.VIEW)
    can_create = validate.permission(Resource.MATERIALS, Action.CREATE)
    can_edit = validate.permission(Resource.MATERIALS, Action.EDIT)
    can_delete = validate.permission(Resource.MATERIALS, Action.DELETE)

    @router.get("", response_model=MaterialList)
    async def list_materials(
        user: Annotated[User, Depends(can_view)],
        params: Annotated[ListParams, Depends(material_list_params)],
    ) -> MaterialList:
        items, pagination = await materials.list_materials(user, params)
        return MaterialList(materials=items, pagination=pagination)

    @router.get("/categories", response_model=CategoryList)
    async def list_categories(
        _user: Annotated[User, Depends(can_view)],
    ) -> CategoryList:
        return CategoryList(categories=await materials.categories())

    @router.get("/{material_id}", response_model=MaterialResponse)
    async def get_material(
        material_id: str,
        _user: Annotated[User, Depends(can_view)],
        include_inactive: Annotated[bool, Query(alias="includeInactive")] = False,  # noqa: FBT002
    ) -> MaterialResponse:
        material = await materials.get(material_id, include_inactive=include_inactive)
        return MaterialResponse(material=material)

    @router.post(
        "",
        response_model=MaterialResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_material(
        payload: MaterialCreate,
        user: Annotated[User, Depends(can_create)],
    ) -> MaterialResponse:
        material = await materials.create(user, payload)
        return MaterialResponse(message="Material created", material=material)

    @router.put("/{material_id}", response_model=MaterialResponse)
    async def update_material(
        material_id: str,
        payload: MaterialUpdate,
        _user: Annotated[User, Depends(can_edit)],
    ) -> MaterialResponse:
        material = await materials.update(material_id, payload)
        return MaterialResponse(message="Material updated", material=material)

    @router.delete("/{material_id}", response_model=MessageResponse)
    async def delete_material(
        material_id: str,
        user: Annotated[User, Depends(can_delete)],
    ) -> MessageResponse:
        await materials.remove(material_id)
        LOGGER.debug("Material %s removed by %s", material_id, user.email)
        return MessageResponse(message="Material removed")

    @router.post("/{material_id}/stock", response_model=MaterialResponse)
    async def adjust_stock(
        material_id: str,
        adjustment: StockAdjustment,
        _user: Annotated[User, Depends(can_edit)],
    ) -> MaterialResponse:
        material = await materials.adjust_stock(
            material_id,
            adjustment.quantity,
            adjustment.operation,
        )
        return MaterialResponse(message="Stock updated", material=material)

    return router
