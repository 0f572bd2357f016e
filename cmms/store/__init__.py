"""Persistence: record store primitives and table layouts."""

from .records import Collection, RecordStore
from .schema import DEFECTS, MATERIALS, TASKS, USERS, initialize_schema, open_database

__all__ = [
    "DEFECTS",
    "MATERIALS",
    "TASKS",
    "USERS",
    "Collection",
    "RecordStore",
    "initialize_schema",
    "open_database",
]
