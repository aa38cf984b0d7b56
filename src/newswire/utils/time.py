import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

# Common timezone abbreviations found in RSS pubDate values
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": timezone.utc,
    "UTC": timezone.utc,
    "BST": timezone(timedelta(hours=1)),
}

_RELATIVE_RE = re.compile(r"^(\d+)\s+(second|minute|hour|day|week)s?\s+ago$", re.IGNORECASE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse provider date values into an aware UTC datetime.

    Accepts datetimes, ISO/RFC 822 strings, SerpAPI style strings
    ("08/14/2024, 07:00 AM, +0000 UTC") and relative values ("3 hours ago").
    Returns None when the value cannot be understood.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        match = _RELATIVE_RE.match(text)
        if match:
            amount, unit = int(match.group(1)), match.group(2).lower()
            return (now or utc_now()) - timedelta(**{f"{unit}s": amount})
        # SerpAPI appends a redundant zone name after the offset
        if text.endswith(" UTC") and "+" in text:
            text = text[: -len(" UTC")]
        try:
            dt = date_parser.parse(text, tzinfos=TZINFOS)
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
