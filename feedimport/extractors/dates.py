"""Date parsing and formatting for feed entries."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import dateparser

logger = logging.getLogger(__name__)

_DATEPARSER_SETTINGS: dict[str, Any] = {
    "RETURN_AS_TIMEZONE_AWARE": True,
    "TIMEZONE": "UTC",
    "TO_TIMEZONE": "UTC",
    "PREFER_DAY_OF_MONTH": "first",
    "PREFER_LOCALE_DATE_ORDER": False,
}


def parse_date(raw: Any) -> datetime | None:
    """Parse *raw* into a timezone-aware UTC :class:`~datetime.datetime`.

    Accepts datetimes, epoch seconds, ISO 8601 strings and the RFC 822 dates
    RSS feeds use.  Values without an offset are treated as UTC (WordPress
    ``date_gmt`` fields carry none).  Returns None when nothing parses.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=UTC) if raw.tzinfo is None else raw.astimezone(UTC)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw, tz=UTC)
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
    if parsed is None:
        try:
            parsed = dateparser.parse(text, settings=_DATEPARSER_SETTINGS)
        except Exception as exc:
            logger.debug("Date parse failed for %r: %s", text, exc)
            return None
    if parsed is None:
        return None
    return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed.astimezone(UTC)


def to_readable_date(value: Any) -> str:
    """Render a date the way entries without a title are named.

    ``2023-01-05T14:03:09Z`` -> ``January 5, 2023, 2:03:09 PM UTC``
    """
    parsed = parse_date(value)
    if parsed is None:
        return ""
    hour = parsed.hour % 12 or 12
    meridiem = "AM" if parsed.hour < 12 else "PM"
    return (
        f"{parsed:%B} {parsed.day}, {parsed.year}, "
        f"{hour}:{parsed:%M:%S} {meridiem} UTC"
    )
