"""Limit/page windows for list queries."""

from __future__ import annotations

from sqlalchemy import Select

from campus_booking.core.config import settings
from campus_booking.services.errors import InvalidRange


def page_window(limit: int | None = None, page: int | None = None) -> tuple[int, int]:
    """Return ``(offset, limit)``; the limit is capped at ``list_max_page_size``."""

    size = settings.list_page_size if limit is None else limit
    number = 1 if page is None else page
    if size < 1:
        raise InvalidRange("limit must be at least 1", details={"limit": size})
    if number < 1:
        raise InvalidRange("page must be at least 1", details={"page": number})
    size = min(size, settings.list_max_page_size)
    return (number - 1) * size, size


def paginate(stmt: Select, limit: int | None = None, page: int | None = None) -> Select:
    offset, size = page_window(limit, page)
    return stmt.offset(offset).limit(size)
