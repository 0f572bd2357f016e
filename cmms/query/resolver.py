"""Scoped query resolver.

Turns the caller's list parameters into a ``QueryPlan``. The caller's
visibility scope is always part of the plan and caller filters are only
ever added next to it, so no parameter can widen what a caller sees.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from pydantic import BaseModel
from pydantic.alias_generators import to_snake

from cmms.auth.guard import visibility_scope
from cmms.common import FieldError, Resource, StockStatus, ValidationFailedError

from .plan import Condition, Operator, QueryPlan, Search, SortKey, SortOrder

if TYPE_CHECKING:
    from collections.abc import Mapping

    from cmms.common import User

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class ListParams(BaseModel):
    """Caller supplied list options.

    :param page: Page number for pagination (1-based)
    :param limit: Number of results per page
    :param sort_by: Field to order by, snake_case or camelCase
    :param sort_order: Sort direction, defaults per resource
    """

    status: str | None = None
    type: str | None = None
    category: str | None = None
    priority: str | None = None
    assigned_to: str | None = None
    role: str | None = None
    stock_status: StockStatus | None = None
    search: str | None = None
    page: int = 1
    limit: int = 10
    sort_by: str | None = None
    sort_order: SortOrder | None = None


@dataclass(frozen=True)
class ResourceQuery:
    """How list parameters map onto one resource.

    :param filters: ListParams attribute -> column for equality filters
    :param search_fields: Columns searched by the ``search`` parameter
    :param sort_fields: Columns the caller may sort by
    :param default_sort: Column used when the caller gives none
    :param default_order: Direction used when the caller gives none
    :param base_conditions: Conditions applied to every read by default
    :param stock_filter: Whether ``stock_status`` applies
    :param sort_rankings: Columns that sort by rank, with their values from
        lowest to highest
    """

    filters: Mapping[str, str]
    search_fields: tuple[str, ...]
    sort_fields: frozenset[str]
    default_sort: str
    default_order: SortOrder
    base_conditions: tuple[Condition, ...] = field(default_factory=tuple)
    stock_filter: bool = False
    sort_rankings: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


# least to most urgent, matching cmms.workitems.models.Priority
PRIORITY_RANKING = ("niski", "średni", "wysoki", "krytyczny")

_WORK_ITEM_SORT_FIELDS = frozenset(
    {
        "created_at",
        "updated_at",
        "completed_at",
        "priority",
        "status",
        "title",
        "location",
    },
)

RESOURCE_QUERIES: Mapping[Resource, ResourceQuery] = MappingProxyType(
    {
        Resource.TASKS: ResourceQuery(
            filters=MappingProxyType(
                {
                    "status": "status",
                    "type": "type",
                    "priority": "priority",
                    "assigned_to": "assigned_to",
                },
            ),
            search_fields=("title", "description", "location"),
            sort_fields=_WORK_ITEM_SORT_FIELDS | {"type", "due_date"},
            default_sort="created_at",
            default_order=SortOrder.DESC,
            sort_rankings=MappingProxyType({"priority": PRIORITY_RANKING}),
        ),
        Resource.DEFECTS: ResourceQuery(
            filters=MappingProxyType(
                {
                    "status": "status",
                    "category": "category",
                    "priority": "priority",
                    "assigned_to": "assigned_to",
                },
            ),
            search_fields=("title", "description", "location"),
            sort_fields=_WORK_ITEM_SORT_FIELDS | {"category", "repair_date"},
            default_sort="created_at",
            default_order=SortOrder.DESC,
            sort_rankings=MappingProxyType({"priority": PRIORITY_RANKING}),
        ),
        Resource.MATERIALS: ResourceQuery(
            filters=MappingProxyType({"category": "category"}),
            search_fields=("name", "description", "category"),
            sort_fields=frozenset(
                {
                    "name",
                    "category",
                    "current_stock",
                    "unit_price",
                    "created_at",
                    "updated_at",
                },
            ),
            default_sort="name",
            default_order=SortOrder.ASC,
            base_conditions=(Condition.eq("is_active", True),),
            stock_filter=True,
        ),
        Resource.USERS: ResourceQuery(
            filters=MappingProxyType({"status": "status", "role": "role"}),
            search_fields=("first_name", "last_name", "email"),
            sort_fields=frozenset(
                {"created_at", "email", "last_name", "role", "status", "last_login"},
            ),
            default_sort="created_at",
            default_order=SortOrder.DESC,
        ),
    },
)

STOCK_STATUS_CONDITIONS: Mapping[StockStatus, tuple[Condition, ...]] = MappingProxyType(
    {
        StockStatus.LOW: (Condition("current_stock", Operator.LE_FIELD, "min_stock"),),
        StockStatus.HIGH: (Condition("current_stock", Operator.GE_FIELD, "max_stock"),),
        StockStatus.NORMAL: (
            Condition("current_stock", Operator.GT_FIELD, "min_stock"),
            Condition("current_stock", Operator.LT_FIELD, "max_stock"),
        ),
    },
)


class ScopedQueryResolver:
    """Composes scope, filters, search, sort and pagination into a plan."""

    DEFAULT_MAX_LIMIT = 100

    def __init__(self, max_limit: int = DEFAULT_MAX_LIMIT) -> None:
        """Create a resolver.

        :param max_limit: Largest page size a caller may request
        """
        self.max_limit = max_limit

    def scope_conditions(self, user: User, resource: Resource) -> tuple[Condition, ...]:
        """Return the default and visibility conditions every read must carry."""
        query = RESOURCE_QUERIES[resource]
        return (*query.base_conditions, *visibility_scope(user, resource).conditions)

    def _pagination_errors(self, params: ListParams) -> list[FieldError]:
        errors = []
        if params.page < 1:
            errors.append(FieldError("page", "Page must be greater than 0"))
        if params.limit < 1 or params.limit > self.max_limit:
            errors.append(
                FieldError("limit", f"Limit must be between 1 and {self.max_limit}"),
            )
        return errors

    def resolve(
        self,
        user: User,
        resource: Resource,
        params: ListParams,
    ) -> QueryPlan:
        """Resolve list parameters into a plan confined to the caller's scope.

        :param user: The caller
        :param resource: The resource being listed
        :param params: Caller supplied filters, search, sort and pagination
        :return: A deterministic query plan
        :raises ValidationFailedError: On invalid pagination or sort fields
        """
        query = RESOURCE_QUERIES[resource]
        errors = self._pagination_errors(params)

        conditions = list(self.scope_conditions(user, resource))
        for attribute, column in query.filters.items():
            value = getattr(params, attribute)
            if value not in (None, ""):
                conditions.append(Condition.eq(column, value))
        if query.stock_filter and params.stock_status is not None:
            conditions.extend(STOCK_STATUS_CONDITIONS[params.stock_status])

        search = None
        if params.search and params.search.strip():
            search = Search(params.search.strip(), query.search_fields)

        sort_by = to_snake(params.sort_by) if params.sort_by else query.default_sort
        if sort_by not in query.sort_fields:
            errors.append(FieldError("sort_by", f"Cannot sort by {params.sort_by}"))
        order = params.sort_order or query.default_order

        if errors:
            raise ValidationFailedError(*errors)

        plan = QueryPlan(
            conditions=tuple(conditions),
            search=search,
            sort=(
                SortKey(
                    sort_by,
                    order == SortOrder.DESC,
                    query.sort_rankings.get(sort_by, ()),
                ),
                SortKey("id"),
            ),
            page=params.page,
            limit=params.limit,
        )
        LOGGER.debug("Resolved %s query for %s: %s", resource, user.id, plan)
        return plan
