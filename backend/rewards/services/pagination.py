# Overview: Shared page/limit/sort handling for list endpoints.

from __future__ import annotations

from typing import Optional

from ..errors import InvalidInputError


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


def resolve_page(page: Optional[int] = None, limit: Optional[int] = None) -> tuple[int, int]:
    """Return (offset, limit); both page and limit must be >= 1."""
    page = DEFAULT_PAGE if page is None else page
    limit = DEFAULT_LIMIT if limit is None else limit
    if page < 1 or limit < 1:
        raise InvalidInputError("Invalid page or limit")
    return (page - 1) * limit, limit


def paginate(query, page: Optional[int] = None, limit: Optional[int] = None) -> tuple[int, list]:
    """Return (total count, rows for the requested page)."""
    offset, limit = resolve_page(page, limit)
    total = query.order_by(None).count()
    return total, query.offset(offset).limit(limit).all()


def parse_sort(sort: Optional[str], columns: dict, default: tuple[str, str]):
    """
    Turn ``"<field>-<asc|desc>"`` into an ORDER BY clause.

    A known field with a missing or unrecognised direction sorts ascending;
    an unknown field falls back to the default ordering.
    """
    field, direction = default
    if sort:
        name, _, dir_part = sort.partition("-")
        if name in columns:
            field = name
            direction = "desc" if dir_part == "desc" else "asc"
    column = columns[field]
    return column.asc() if direction == "asc" else column.desc()
