"""Table definitions and database connection setup."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import aiosqlite

from .records import Collection

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

CREATE_USERS_TABLE = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        hashed_password TEXT NOT NULL,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        role TEXT, -- NULL until approved
        status TEXT NOT NULL DEFAULT 'pending',
        overrides TEXT NOT NULL DEFAULT '{}',
        department TEXT,
        phone TEXT,
        last_login TEXT,
        password_reset_token TEXT, -- sha256 of the issued token
        password_reset_expires TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """

CREATE_TASKS_TABLE = """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        type TEXT NOT NULL,
        priority TEXT NOT NULL,
        status TEXT NOT NULL,
        assigned_to TEXT,
        created_by TEXT NOT NULL,
        location TEXT,
        estimated_duration INTEGER, -- minutes
        actual_duration INTEGER, -- minutes
        due_date TEXT,
        completed_at TEXT,
        remarks TEXT,
        materials TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1
    );
    CREATE INDEX IF NOT EXISTS tasks_assigned_to ON tasks (assigned_to);
    CREATE INDEX IF NOT EXISTS tasks_created_by ON tasks (created_by);
    """

CREATE_DEFECTS_TABLE = """
    CREATE TABLE IF NOT EXISTS defects (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        location TEXT NOT NULL,
        priority TEXT NOT NULL,
        status TEXT NOT NULL,
        category TEXT NOT NULL,
        reported_by TEXT NOT NULL,
        assigned_to TEXT,
        estimated_cost REAL,
        actual_cost REAL,
        estimated_repair_time REAL, -- hours
        actual_repair_time REAL, -- hours
        repair_date TEXT,
        completed_at TEXT,
        remarks TEXT,
        materials TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1
    );
    CREATE INDEX IF NOT EXISTS defects_assigned_to ON defects (assigned_to);
    CREATE INDEX IF NOT EXISTS defects_reported_by ON defects (reported_by);
    """

CREATE_MATERIALS_TABLE = """
    CREATE TABLE IF NOT EXISTS materials (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        category TEXT NOT NULL,
        unit TEXT NOT NULL,
        current_stock INTEGER NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
        min_stock INTEGER NOT NULL DEFAULT 0,
        max_stock INTEGER NOT NULL DEFAULT 100,
        unit_price REAL NOT NULL DEFAULT 0,
        supplier TEXT,
        location TEXT,
        barcode TEXT UNIQUE,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """

USERS = Collection(
    table="users",
    columns=(
        "id",
        "email",
        "hashed_password",
        "first_name",
        "last_name",
        "role",
        "status",
        "overrides",
        "department",
        "phone",
        "last_login",
        "password_reset_token",
        "password_reset_expires",
        "created_at",
        "updated_at",
    ),
    json_columns=frozenset({"overrides"}),
    label="User",
)

TASKS = Collection(
    table="tasks",
    columns=(
        "id",
        "title",
        "description",
        "type",
        "priority",
        "status",
        "assigned_to",
        "created_by",
        "location",
        "estimated_duration",
        "actual_duration",
        "due_date",
        "completed_at",
        "remarks",
        "materials",
        "created_at",
        "updated_at",
        "version",
    ),
    json_columns=frozenset({"materials"}),
    label="Task",
)

DEFECTS = Collection(
    table="defects",
    columns=(
        "id",
        "title",
        "description",
        "location",
        "priority",
        "status",
        "category",
        "reported_by",
        "assigned_to",
        "estimated_cost",
        "actual_cost",
        "estimated_repair_time",
        "actual_repair_time",
        "repair_date",
        "completed_at",
        "remarks",
        "materials",
        "created_at",
        "updated_at",
        "version",
    ),
    json_columns=frozenset({"materials"}),
    label="Defect",
)

MATERIALS = Collection(
    table="materials",
    columns=(
        "id",
        "name",
        "description",
        "category",
        "unit",
        "current_stock",
        "min_stock",
        "max_stock",
        "unit_price",
        "supplier",
        "location",
        "barcode",
        "is_active",
        "created_by",
        "created_at",
        "updated_at",
    ),
    json_columns=frozenset({"supplier", "location"}),
    bool_columns=frozenset({"is_active"}),
    label="Material",
)


def _casefold(value: str | None) -> str | None:
    return value.casefold() if isinstance(value, str) else value


async def initialize_schema(connection: aiosqlite.Connection) -> None:
    """Create all tables and indexes if they do not exist."""
    await connection.executescript(
        CREATE_USERS_TABLE
        + CREATE_TASKS_TABLE
        + CREATE_DEFECTS_TABLE
        + CREATE_MATERIALS_TABLE,
    )
    LOGGER.debug("Database schema initialized")


@asynccontextmanager
async def open_database(database_path: str) -> AsyncGenerator[aiosqlite.Connection]:
    """Open an autocommit connection with the schema and SQL helpers installed.

    Every statement commits on its own, so concurrent requests sharing the
    connection never share a transaction.

    :param database_path: Path to the SQLite file, or ``:memory:``
    """
    async with aiosqlite.connect(database_path, isolation_level=None) as connection:
        connection.row_factory = aiosqlite.Row
        await connection.create_function("casefold", 1, _casefold, deterministic=True)
        await initialize_schema(connection)
        LOGGER.info("Opened database at %s", database_path)
        yield connection
