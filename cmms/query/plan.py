"""Query plan objects shared by the resolver, the guard and the record store.

A plan is a plain description of a list query. The record store renders it
to SQL; the guard evaluates the same conditions against a single record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Operator(StrEnum):
    """Comparison operators a condition can use.

    The ``*_FIELD`` operators compare two columns of the same record.
    """

    EQ = "="
    LE_FIELD = "<="
    GE_FIELD = ">="
    LT_FIELD = "<"
    GT_FIELD = ">"


class SortOrder(StrEnum):
    """Sort direction accepted by list endpoints."""

    ASC = "asc"
    DESC = "desc"


def _read(record: Any, name: str) -> Any:  # noqa: ANN401
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


@dataclass(frozen=True)
class Condition:
    """A single predicate on a record field.

    :param field: Column the predicate applies to
    :param op: Comparison operator
    :param value: Literal value, or the other column name for ``*_FIELD`` ops
    """

    field: str
    op: Operator
    value: Any

    @classmethod
    def eq(cls, field: str, value: Any) -> Condition:  # noqa: ANN401
        """Shortcut for an equality condition."""
        return cls(field, Operator.EQ, value)

    def matches(self, record: Any) -> bool:  # noqa: ANN401
        """Evaluate the condition against a record or mapping."""
        left = _read(record, self.field)
        if self.op == Operator.EQ:
            return left == self.value

        right = _read(record, self.value)
        if left is None or right is None:
            return False
        match self.op:
            case Operator.LE_FIELD:
                return left <= right
            case Operator.GE_FIELD:
                return left >= right
            case Operator.LT_FIELD:
                return left < right
            case Operator.GT_FIELD:
                return left > right
        return False


@dataclass(frozen=True)
class Search:
    """Case-insensitive substring search OR'd across several fields."""

    term: str
    fields: tuple[str, ...]

    def matches(self, record: Any) -> bool:  # noqa: ANN401
        """Evaluate the search against a record or mapping."""
        needle = self.term.casefold()
        return any(
            needle in str(_read(record, name) or "").casefold() for name in self.fields
        )


@dataclass(frozen=True)
class SortKey:
    """One ORDER BY component.

    :param field: Column to sort by
    :param descending: Whether the order is reversed
    :param ranking: Values of the column in ascending order; when given the
        column sorts by position in this tuple, unknown values last
    """

    field: str
    descending: bool = False
    ranking: tuple[Any, ...] = ()


@dataclass(frozen=True)
class QueryPlan:
    """Deterministic description of a list query.

    :param conditions: Conditions that are all required to hold
    :param search: Optional substring search
    :param sort: Sort keys, most significant first
    :param page: 1-based page number
    :param limit: Page size, None for no paging
    """

    conditions: tuple[Condition, ...] = ()
    search: Search | None = None
    sort: tuple[SortKey, ...] = field(default_factory=tuple)
    page: int = 1
    limit: int | None = None

    @property
    def offset(self) -> int:
        """Return the number of rows skipped before the current page."""
        if self.limit is None:
            return 0
        return (self.page - 1) * self.limit

    def matches(self, record: Any) -> bool:  # noqa: ANN401
        """Return True if a record satisfies every condition and the search."""
        if not all(condition.matches(record) for condition in self.conditions):
            return False
        return self.search is None or self.search.matches(record)
