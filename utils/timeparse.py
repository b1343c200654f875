"""
Free-text time parsing for Forest
Durations ("45 minutes", "2 hours"), clock times ("7:30 AM") and ISO timestamps
"""

import logging
import re
from datetime import datetime
from typing import Union, Optional

from utils.config import DEFAULT_DURATION_MINUTES

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r'(\d+)\s*(minute|hour|min|hr)', re.IGNORECASE)
CLOCK_PATTERN = re.compile(r'^\s*(\d{1,2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$')

DEFAULT_CLOCK_MINUTES = 7 * 60  # 7:00 AM


def parse_time_to_minutes(value: Union[str, int, float, None]) -> int:
    """
    Parse a free-text duration into minutes.

    Numbers are taken as minutes already. Anything unparsable falls back to
    30 minutes.
    """
    if isinstance(value, bool):
        value = None
    if isinstance(value, (int, float)):
        return int(value)
    if not value:
        logger.debug(f"[parse_time_to_minutes] empty duration, using {DEFAULT_DURATION_MINUTES}")
        return DEFAULT_DURATION_MINUTES

    match = DURATION_PATTERN.search(str(value))
    if not match:
        logger.debug(f"[parse_time_to_minutes] unparsable '{value}', using {DEFAULT_DURATION_MINUTES}")
        return DEFAULT_DURATION_MINUTES

    amount = int(match.group(1))
    unit = match.group(2).lower()
    if unit.startswith("hour") or unit.startswith("hr"):
        return amount * 60
    return amount


def parse_clock(value: Union[str, None], default: int = DEFAULT_CLOCK_MINUTES) -> int:
    """Parse "H:MM AM/PM" into minutes since midnight"""
    if not value:
        return default

    match = CLOCK_PATTERN.match(str(value))
    if not match:
        logger.debug(f"[parse_clock] unparsable clock time '{value}', using {format_clock(default)}")
        return default

    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    period = (match.group(3) or "").upper()
    if hours > 23 or minutes > 59:
        logger.debug(f"[parse_clock] out of range clock time '{value}', using {format_clock(default)}")
        return default

    total = hours * 60 + minutes
    if period == "PM" and hours != 12:
        total += 12 * 60
    elif period == "AM" and hours == 12:
        total = minutes

    return total


def format_clock(minutes: int) -> str:
    """Format minutes since midnight as "H:MM AM/PM" """
    hours = (minutes // 60) % 24
    mins = minutes % 60
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours - 12 if hours > 12 else (12 if hours == 0 else hours)

    return f"{display_hours}:{mins:02d} {period}"


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a naive local datetime.

    Aware timestamps (including a trailing "Z") are converted to local time.
    Returns None for anything unparsable.
    """
    if value is None or isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"[parse_timestamp] unparsable timestamp '{value}'")
            return None

    if parsed is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
