"""Base models shared by every request and response payload."""

from __future__ import annotations

from math import ceil

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Base for request payloads. Accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class MessageResponse(BaseModel):
    """Plain confirmation message."""

    message: str


class Pagination(BaseModel):
    """Page position of a list response.

    :param current: The 1-based page returned
    :param pages: Number of pages for the current page size
    :param total: Number of matching records
    """

    current: int
    pages: int
    total: int

    @classmethod
    def of(cls, page: int, limit: int | None, total: int) -> Pagination:
        """Build the pagination block for a page of a list."""
        pages = ceil(total / limit) if limit else int(total > 0)
        return cls(current=page, pages=pages, total=total)
