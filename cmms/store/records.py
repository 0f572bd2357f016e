"""Record store over aiosqlite.

``RecordStore`` is the persistence collaborator the services talk to. It
offers find-by-plan, count, insert, delete and two atomic write primitives:
``conditional_update`` (compare-and-set on arbitrary columns) and
``increment`` (arithmetic update guarded by a floor), each a single SQL
statement.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from cmms.common import ConflictError, NotFoundError
from cmms.query.plan import Condition, Operator, QueryPlan, Search, SortKey

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from aiosqlite import Connection

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


@dataclass(frozen=True)
class Collection:
    """Table layout of one record collection.

    :param table: SQL table name
    :param columns: Every column, ``id`` included
    :param json_columns: Columns holding JSON-encoded nested values
    :param bool_columns: Columns holding 0/1 flags
    :param label: Human readable record name used in error messages
    """

    table: str
    columns: tuple[str, ...]
    json_columns: frozenset[str] = field(default_factory=frozenset)
    bool_columns: frozenset[str] = field(default_factory=frozenset)
    label: str = "Record"


class RecordStore:
    """Repository for one collection."""

    def __init__(self, connection: Connection, collection: Collection) -> None:
        """Create a store bound to an open connection.

        :param connection: Database connection in autocommit mode
        :param collection: Layout of the collection
        """
        self.connection = connection
        self.collection = collection

    def _column(self, name: str) -> str:
        if name not in self.collection.columns:
            msg = f"Unknown column {name!r} for {self.collection.table}"
            raise ValueError(msg)
        return name

    def _encode(self, column: str, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return None
        if column in self.collection.json_columns:
            return json.dumps(value, ensure_ascii=False, default=str)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    def _decode(self, row: Any) -> dict[str, Any]:  # noqa: ANN401
        record = dict(row)
        for column in self.collection.json_columns:
            if record.get(column) is not None:
                record[column] = json.loads(record[column])
        for column in self.collection.bool_columns:
            if record.get(column) is not None:
                record[column] = bool(record[column])
        return record

    def _clauses(
        self,
        conditions: Iterable[Condition],
        search: Search | None = None,
    ) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        for condition in conditions:
            column = self._column(condition.field)
            if condition.op != Operator.EQ:
                # column-to-column comparison, both names are whitelisted
                clauses.append(f"{column} {condition.op} {self._column(condition.value)}")
            elif condition.value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(self._encode(column, condition.value))

        if search is not None and search.fields:
            parts = [
                f"INSTR(casefold({self._column(name)}), ?) > 0" for name in search.fields
            ]
            clauses.append(f"({' OR '.join(parts)})")
            params.extend([search.term.casefold()] * len(parts))

        return clauses, params

    @staticmethod
    def _where(clauses: list[str]) -> str:
        return f" WHERE {' AND '.join(clauses)}" if clauses else ""

    def _order(self, sort: tuple[SortKey, ...]) -> tuple[str, list[Any]]:
        if not sort:
            return "", []
        keys = []
        params: list[Any] = []
        for key in sort:
            column = self._column(key.field)
            expression = column
            if key.ranking:
                whens = " ".join(
                    f"WHEN ? THEN {rank}" for rank in range(len(key.ranking))
                )
                expression = f"CASE {column} {whens} ELSE {len(key.ranking)} END"
                params.extend(self._encode(column, value) for value in key.ranking)
            keys.append(f"{expression} {'DESC' if key.descending else 'ASC'}")
        return f" ORDER BY {', '.join(keys)}", params

    async def find(self, plan: QueryPlan) -> tuple[list[dict[str, Any]], int]:
        """Select the records of one page of a plan.

        :param plan: Resolved query plan
        :return: Tuple of (records on the page, total matching records)
        """
        clauses, params = self._clauses(plan.conditions, plan.search)
        where_clause = self._where(clauses)
        table = self.collection.table

        # column names are whitelisted by _column, values are bound parameters
        order_clause, order_params = self._order(plan.sort)
        query = f"SELECT * FROM {table}{where_clause}{order_clause}"  # noqa: S608
        page_params = [*params, *order_params]
        if plan.limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([plan.limit, plan.offset])

        cursor = await self.connection.execute(query, page_params)
        rows = await cursor.fetchall()

        cursor = await self.connection.execute(
            f"SELECT COUNT(*) FROM {table}{where_clause}",  # noqa: S608
            params,
        )
        total = await cursor.fetchone()
        return [self._decode(row) for row in rows], total[0] if total else 0

    async def count(self, conditions: Iterable[Condition] = ()) -> int:
        """Count records matching all conditions."""
        clauses, params = self._clauses(conditions)
        cursor = await self.connection.execute(
            f"SELECT COUNT(*) FROM {self.collection.table}{self._where(clauses)}",  # noqa: S608
            params,
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def distinct(
        self,
        column: str,
        conditions: Iterable[Condition] = (),
    ) -> list[Any]:
        """Return the sorted distinct non-null values of a column."""
        name = self._column(column)
        clauses, params = self._clauses(conditions)
        clauses.append(f"{name} IS NOT NULL")
        cursor = await self.connection.execute(
            f"SELECT DISTINCT {name} FROM {self.collection.table}"  # noqa: S608
            f"{self._where(clauses)} ORDER BY {name}",
            params,
        )
        return [row[0] for row in await cursor.fetchall()]

    async def find_by_id(self, record_id: str) -> dict[str, Any] | None:
        """Return a record by id, or None if it does not exist."""
        cursor = await self.connection.execute(
            f"SELECT * FROM {self.collection.table} WHERE id = ?",  # noqa: S608
            (record_id,),
        )
        row = await cursor.fetchone()
        return self._decode(row) if row is not None else None

    async def find_by_ids(self, record_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Return the existing records among the given ids, keyed by id."""
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        cursor = await self.connection.execute(
            f"SELECT * FROM {self.collection.table} WHERE id IN ({placeholders})",  # noqa: S608
            ids,
        )
        records = [self._decode(row) for row in await cursor.fetchall()]
        return {record["id"]: record for record in records}

    async def insert(self, record: Mapping[str, Any]) -> str:
        """Insert a record, generating an id when none is given.

        :return: The id of the new record
        :raises aiosqlite.IntegrityError: On unique or check constraint violations
        """
        values = dict(record)
        values.setdefault("id", uuid.uuid4().hex)
        columns = [self._column(name) for name in values]
        placeholders = ", ".join("?" for _ in columns)

        await self.connection.execute(
            f"INSERT INTO {self.collection.table} ({', '.join(columns)}) "  # noqa: S608
            f"VALUES ({placeholders})",
            [self._encode(name, values[name]) for name in columns],
        )
        LOGGER.debug("Inserted %s %s", self.collection.table, values["id"])
        return values["id"]

    async def conditional_update(
        self,
        record_id: str,
        precondition: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Apply a patch only if every precondition column still holds its value.

        A None precondition value requires the column to be NULL.

        :param record_id: Id of the record to update
        :param precondition: Column values the stored record must match
        :param patch: Column values to write
        :return: The updated record
        :raises NotFoundError: If the record does not exist
        :raises ConflictError: If the record exists but the precondition failed
        """
        if not patch:
            msg = "Empty patch"
            raise ValueError(msg)

        assignments = [f"{self._column(name)} = ?" for name in patch]
        clauses, params = self._clauses(
            Condition.eq(name, value) for name, value in precondition.items()
        )
        clauses.insert(0, "id = ?")

        cursor = await self.connection.execute(
            f"UPDATE {self.collection.table} SET {', '.join(assignments)}"  # noqa: S608
            f"{self._where(clauses)}",
            [
                *(self._encode(name, value) for name, value in patch.items()),
                record_id,
                *params,
            ],
        )

        if cursor.rowcount == 0:
            if await self.find_by_id(record_id) is None:
                msg = f"{self.collection.label} does not exist"
                raise NotFoundError(msg)
            LOGGER.debug(
                "Precondition failed for %s %s",
                self.collection.table,
                record_id,
            )
            msg = f"{self.collection.label} was modified concurrently"
            raise ConflictError(msg)

        updated = await self.find_by_id(record_id)
        if updated is None:
            msg = f"{self.collection.label} does not exist"
            raise NotFoundError(msg)
        return updated

    async def increment(
        self,
        record_id: str,
        column: str,
        delta: int,
        *,
        minimum: int | None = None,
        precondition: Mapping[str, Any] | None = None,
        patch: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Add ``delta`` to a numeric column in a single statement.

        The update only applies when the resulting value stays at or above
        ``minimum`` and every precondition holds.

        :return: The updated record, or None if no row satisfied the guard
        """
        name = self._column(column)
        patch = patch or {}
        assignments = [
            f"{name} = {name} + ?",
            *(f"{self._column(key)} = ?" for key in patch),
        ]
        clauses, params = self._clauses(
            Condition.eq(key, value) for key, value in (precondition or {}).items()
        )
        clauses.insert(0, "id = ?")
        params.insert(0, record_id)
        if minimum is not None:
            clauses.append(f"{name} + ? >= ?")
            params.extend([delta, minimum])

        cursor = await self.connection.execute(
            f"UPDATE {self.collection.table} SET {', '.join(assignments)}"  # noqa: S608
            f"{self._where(clauses)}",
            [
                delta,
                *(self._encode(key, value) for key, value in patch.items()),
                *params,
            ],
        )
        if cursor.rowcount == 0:
            return None
        return await self.find_by_id(record_id)

    async def delete(self, record_id: str) -> int:
        """Delete a record by id.

        :return: Number of rows deleted
        """
        cursor = await self.connection.execute(
            f"DELETE FROM {self.collection.table} WHERE id = ?",  # noqa: S608
            (record_id,),
        )
        return cursor.rowcount
