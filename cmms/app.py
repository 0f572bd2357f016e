"""FastAPI application factory for the maintenance backend."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cmms.admin import configure_admin_router
from cmms.auth import configure_auth_router
from cmms.common import CMMSError, FieldError, ValidationFailedError
from cmms.materials import configure_material_router
from cmms.notifications import LoggingNotifier, NotificationDispatcher, Notifier
from cmms.store import open_database
from cmms.workitems import configure_defect_router, configure_task_router

from .config import AppConfig, configure_logging, load_config_from_env
from .container import build_services

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

IN_MEMORY_DATABASE = ":memory:"
_LOCATION_PREFIXES = {"body", "query", "path"}


def _prepare_database_path(database_path: str) -> None:
    if database_path == IN_MEMORY_DATABASE:
        return

    if not Path(database_path).parent.exists():
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)
        LOGGER.info(
            "Created directory for database at %s",
            Path(database_path).parent,
        )

    if not Path(database_path).exists():
        LOGGER.info("Database file does not exist at %s", database_path)


def _field_errors(error: RequestValidationError) -> ValidationFailedError:
    """Convert request validation errors into a ValidationFailedError."""
    fields = []
    for detail in error.errors():
        location = [str(part) for part in detail.get("loc", ())]
        if location and location[0] in _LOCATION_PREFIXES:
            location = location[1:]
        fields.append(FieldError(".".join(location) or "body", detail.get("msg", "")))
    return ValidationFailedError(*fields)


def register_error_handlers(app: FastAPI) -> None:
    """Answer domain and request validation errors with their JSON form."""

    @app.exception_handler(CMMSError)
    async def handle_domain_error(request: Request, exc: CMMSError) -> JSONResponse:
        LOGGER.debug(
            "%s %s failed with %s: %s",
            request.method,
            request.url.path,
            exc.kind,
            exc.detail,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        error = _field_errors(exc)
        LOGGER.debug("%s %s rejected: %s", request.method, request.url.path, error)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error.to_dict(),
        )


def configure_fastapi_app(config: AppConfig, notifier: Notifier | None = None) -> FastAPI:
    """Configure and return the FastAPI application.

    :param config: Application configuration
    :param notifier: Notification channel, logging only by default
    :return: Configured FastAPI application
    """
    _prepare_database_path(config.database_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[Any, Any]:
        """Application lifespan manager.

        Opens the database, seeds the first admin, wires the routers and
        drains pending notifications on shutdown.
        """
        LOGGER.info("CMMS API is starting")

        async with (
            open_database(config.database_path) as db_connection,
            NotificationDispatcher(notifier or LoggingNotifier()) as notifications,
        ):
            services = build_services(
                db_connection,
                config.security_manager,
                notifications,
                max_page_limit=config.max_page_limit,
                stock_update_retries=config.stock_update_retries,
            )
            await services.user_queries.seed_admin(config.admin_credentials)
            app.state.services = services

            validate = services.validate
            app.include_router(
                configure_auth_router(APIRouter(), validate, notifications),
                prefix="/auth",
                tags=["auth"],
            )
            app.include_router(
                configure_task_router(APIRouter(), validate, services.tasks),
                prefix="/tasks",
                tags=["tasks"],
            )
            app.include_router(
                configure_defect_router(APIRouter(), validate, services.defects),
                prefix="/defects",
                tags=["defects"],
            )
            app.include_router(
                configure_material_router(APIRouter(), validate, services.materials),
                prefix="/materials",
                tags=["materials"],
            )
            app.include_router(
                configure_admin_router(APIRouter(), validate, services.admin),
                prefix="/admin",
                tags=["admin"],
            )

            yield

            LOGGER.info("CMMS API is shutting down")

    app = FastAPI(
        title="CMMS API",
        version="0.0.1",
        lifespan=lifespan,
        root_path=config.root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/")
    def read_root() -> str:
        return "CMMS API"

    return app


def create_app(env_file: str | None = os.environ.get("ENV_FILE", ".env")) -> FastAPI:
    """Create and configure the FastAPI application.

    The default here is for uvicorn command line usage, in which case the user
    should set ENV_FILE environment variable if they want a different file.

    :param env_file: Optional path to the environment configuration file
    :return: Configured FastAPI application
    """
    config = load_config_from_env(env_file)
    configure_logging(config)
    return configure_fastapi_app(config)
