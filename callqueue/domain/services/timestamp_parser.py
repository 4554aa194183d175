"""
Call Timestamp Parser
Turns heterogeneous call-log timestamps into aware UTC datetimes.

Providers report either an epoch number, an ISO-like string, or a
locale-formatted "D MMM YYYY HH:MM:SS" string. Strategies are tried in
order; an unparseable value yields None so the caller can skip the event
instead of guessing.
"""
import logging
import re
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

import pytz

logger = logging.getLogger(__name__)

RawTimestamp = Union[int, float, str, None]

DEFAULT_LOCAL_TIMEZONE = "Europe/Warsaw"

# Epoch values above this are milliseconds (1e11 s is year 5138)
_MS_THRESHOLD = 1e11

MONTH_ABBREVIATIONS = {
    # Polish
    "sty": 1, "lut": 2, "mar": 3, "kwi": 4, "maj": 5, "cze": 6,
    "lip": 7, "sie": 8, "wrz": 9, "paź": 10, "paz": 10, "lis": 11, "gru": 12,
    # English
    "jan": 1, "feb": 2, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_LOCALIZED_PATTERN = re.compile(
    r"^\s*(\d{1,2})\s+([^\W\d_]+)\.?\s+(\d{4}),?\s+(\d{1,2}):(\d{2}):(\d{2})\s*$"
)


def _get_timezone(name: str) -> Any:
    try:
        return pytz.timezone(name)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return pytz.UTC


def _parse_epoch(value: RawTimestamp, tz: Any) -> Optional[datetime]:
    """Epoch number (or numeric string), milliseconds or seconds."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not re.fullmatch(r"\d+(\.\d+)?", stripped):
            return None
        number = float(stripped)
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return None

    if number <= 0:
        return None
    seconds = number / 1000 if number > _MS_THRESHOLD else number
    try:
        return datetime.fromtimestamp(seconds, tz=pytz.UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_iso(value: RawTimestamp, tz: Any) -> Optional[datetime]:
    """ISO 8601 / standard date string."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = tz.localize(parsed)
    return parsed.astimezone(pytz.UTC)


def _parse_localized(value: RawTimestamp, tz: Any) -> Optional[datetime]:
    """Localized "D MMM YYYY HH:MM:SS", e.g. "15 sty 2024 10:30:00"."""
    if not isinstance(value, str):
        return None
    match = _LOCALIZED_PATTERN.match(value)
    if not match:
        return None

    day, month_name, year, hour, minute, second = match.groups()
    month = MONTH_ABBREVIATIONS.get(month_name.lower()[:3])
    if month is None:
        return None
    try:
        naive = datetime(int(year), month, int(day), int(hour), int(minute), int(second))
    except ValueError:
        return None
    return tz.localize(naive).astimezone(pytz.UTC)


PARSE_STRATEGIES: List[Callable[[RawTimestamp, Any], Optional[datetime]]] = [
    _parse_epoch,
    _parse_iso,
    _parse_localized,
]


def parse_call_timestamp(
    value: RawTimestamp,
    local_timezone: str = DEFAULT_LOCAL_TIMEZONE
) -> Optional[datetime]:
    """
    Parse a call-log timestamp.

    Args:
        value: Epoch number, ISO string or localized date string
        local_timezone: Zone for values without offset information

    Returns:
        Aware UTC datetime, or None if no strategy accepts the value
    """
    if value is None:
        return None

    tz = _get_timezone(local_timezone)
    for strategy in PARSE_STRATEGIES:
        parsed = strategy(value, tz)
        if parsed is not None:
            return parsed

    logger.debug(f"No timestamp strategy matched: {value!r}")
    return None
