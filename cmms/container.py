"""Wiring of stores, services and validators over one database connection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from cmms.admin import AdminService
from cmms.auth import UserQueries, Validate
from cmms.materials import MaterialService, StockLedger
from cmms.query.resolver import ScopedQueryResolver
from cmms.store import DEFECTS, MATERIALS, TASKS, USERS, RecordStore
from cmms.workitems import DEFECT_KIND, TASK_KIND, WorkItemService

if TYPE_CHECKING:
    from aiosqlite import Connection

    from cmms.auth import SecurityManager
    from cmms.notifications import NotificationDispatcher


@dataclass
class Services:
    """Every service the routers need."""

    user_queries: UserQueries
    validate: Validate
    resolver: ScopedQueryResolver
    materials: MaterialService
    tasks: WorkItemService
    defects: WorkItemService
    admin: AdminService
    notifications: NotificationDispatcher


def build_services(  # noqa: PLR0913
    connection: Connection,
    security_manager: SecurityManager,
    notifications: NotificationDispatcher,
    *,
    max_page_limit: int = ScopedQueryResolver.DEFAULT_MAX_LIMIT,
    stock_update_retries: int = 3,
) -> Services:
    """Build the services over an open connection.

    :param connection: Database connection with the schema installed
    :param security_manager: Password and token settings
    :param notifications: Dispatcher for user notifications
    :param max_page_limit: Largest page size a list may request
    :param stock_update_retries: Bound on re-evaluating a stock write that lost a race
    """
    user_queries = UserQueries(RecordStore(connection, USERS), security_manager)
    resolver = ScopedQueryResolver(max_page_limit)

    material_store = RecordStore(connection, MATERIALS)
    materials = MaterialService(
        material_store,
        StockLedger(material_store, stock_update_retries),
        resolver,
    )

    tasks = WorkItemService(
        TASK_KIND,
        RecordStore(connection, TASKS),
        user_queries,
        materials,
        resolver,
        notifications,
    )
    defects = WorkItemService(
        DEFECT_KIND,
        RecordStore(connection, DEFECTS),
        user_queries,
        materials,
        resolver,
        notifications,
    )

    return Services(
        user_queries=user_queries,
        validate=Validate(user_queries),
        resolver=resolver,
        materials=materials,
        tasks=tasks,
        defects=defects,
        admin=AdminService(
            user_queries,
            tasks,
            defects,
            materials,
            resolver,
            notifications,
        ),
        notifications=notifications,
    )
