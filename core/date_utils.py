"""
Centralized date and time utilities for the application.

All timestamps are handled as timezone-aware datetime objects, defaulting
to UTC. Parsing wraps ``dateutil`` so the rest of the codebase never deals
with naive datetimes or raw ISO strings. Local wall-clock conversion for
fare windows goes through ``pytz``.
"""

import logging
from datetime import UTC, date, datetime

import pytz
from dateutil import parser

logger = logging.getLogger(__name__)


def get_current_utc_time() -> datetime:
    """Return the current time as a timezone-aware datetime object in UTC."""
    return datetime.now(UTC)


def parse_timestamp(ts: str | datetime | None) -> datetime | None:
    """
    Parse a timestamp string (or datetime object) into a UTC-aware datetime.

    Naive inputs are assumed to already be UTC.

    Args:
        ts: The timestamp to parse, either as an ISO 8601 string or a
            datetime object.

    Returns:
        A UTC datetime object, or None if parsing fails.
    """
    if not ts:
        logger.debug("Received empty timestamp; returning None.")
        return None

    if isinstance(ts, datetime):
        return ensure_utc(ts)

    try:
        parsed_time = parser.isoparse(ts)
    except (ValueError, TypeError) as e:
        logger.warning("Failed to parse timestamp '%s': %s", ts, e)
        return None
    return ensure_utc(parsed_time)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return the datetime as an explicit UTC-aware value."""

    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)


def normalize_to_utc_datetime(value: str | datetime | date | None) -> datetime | None:
    """Normalize arbitrary date/datetime inputs to a UTC-aware datetime."""

    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time(), tzinfo=UTC)

    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed:
            return parsed

        try:
            parsed_date = datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            logger.warning(
                "Unable to interpret value '%s' as datetime; returning None.", value
            )
            return None

        return datetime.combine(parsed_date, datetime.min.time(), tzinfo=UTC)

    logger.warning("Unsupported datetime input type '%s'", type(value))
    return None


def local_hour(dt: datetime, timezone_name: str) -> int:
    """Hour of day (0-23) of ``dt`` on the wall clock of ``timezone_name``."""
    try:
        tz = pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone '%s'; falling back to UTC", timezone_name)
        tz = pytz.UTC
    return ensure_utc(dt).astimezone(tz).hour
