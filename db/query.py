"""
Query building utilities for MongoDB.

Provides functions for constructing date-range filters from the
``startDate``/``endDate`` query parameters the dashboard sends.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from core.date_utils import normalize_to_utc_datetime
from core.exceptions import ValidationError

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


def parse_query_date(
    date_str: str | None,
    end_of_day: bool = False,
) -> datetime | None:
    """
    Parse a date string for query filtering.

    Handles both date-only strings (YYYY-MM-DD) and full ISO datetime strings.
    For date-only strings, can optionally set to end of day.

    Args:
        date_str: Date string to parse (YYYY-MM-DD or ISO format).
        end_of_day: If True and date_str is date-only, set time to 23:59:59.999999.

    Returns:
        Parsed datetime in UTC, or None if date_str is empty.

    Raises:
        ValidationError: If date_str is present but unparseable.
    """
    if not date_str:
        return None

    dt = normalize_to_utc_datetime(date_str)
    if dt is None:
        msg = f"Invalid date: {date_str}"
        raise ValidationError(msg)

    is_date_only = "T" not in date_str and "t" not in date_str and " " not in date_str

    if is_date_only:
        if end_of_day:
            return dt.replace(hour=23, minute=59, second=59, microsecond=999999)
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)

    return dt


def build_date_range_filter(
    start_date: str | None,
    end_date: str | None,
    *,
    date_field: str = "capturedAt",
) -> dict[str, Any]:
    """
    Build a ``{field: {"$gte": ..., "$lte": ...}}`` clause.

    Date-only end dates cover the whole day. Returns an empty dict when
    neither bound is given.

    Example:
        >>> build_date_range_filter("2024-01-01", "2024-01-31")
        {'capturedAt': {'$gte': datetime(2024, 1, 1, ...), '$lte': datetime(2024, 1, 31, 23, 59, ...)}}
    """
    start = parse_query_date(start_date)
    end = parse_query_date(end_date, end_of_day=True)

    if start and end and start > end:
        msg = "startDate must not be after endDate"
        raise ValidationError(msg)

    clause: dict[str, Any] = {}
    if start:
        clause["$gte"] = start
    if end:
        clause["$lte"] = end

    return {date_field: clause} if clause else {}
