"""Lenient date parsing shared by the row importer and the TestNG parser.

parse_datetime:  returns an aware UTC datetime or None (never raises)
parse_date:      returns a date or None (never raises)

Accepted inputs:
- ISO 8601 with an explicit offset or ``Z`` (``2024-01-15T10:30:00+05:30``)
- ISO / space separated timestamps with a trailing ``UTC`` or ``GMT``
- timestamps with a trailing timezone abbreviation (``2024-01-15T10:30:00 IST``);
  the abbreviation is stripped and the remainder is read as local time
- DD.MM.YYYY, YYYY/MM/DD and MM/DD/YYYY dates
- datetime / date objects (spreadsheet cells)
"""
import logging
import re
from datetime import date, datetime, timezone

logger = logging.getLogger(__name__)

# Abbreviations TestNG and spreadsheet tools emit after a local timestamp.
# They are ambiguous (CST, IST) so they are dropped rather than converted.
TIMEZONE_ABBREVIATIONS = frozenset({
    "IST", "PST", "PDT", "EST", "EDT", "CST", "CDT", "MST", "MDT",
    "AKST", "AKDT", "HST", "JST", "KST", "CET", "CEST", "EET", "EEST",
    "WET", "WEST", "BST", "MSK", "SGT", "HKT", "AEST", "AEDT", "ACST",
    "AWST", "NZST", "NZDT", "BRT", "ART",
})

_UTC_MARKERS = frozenset({"UTC", "GMT", "Z"})

_TRAILING_WORD = re.compile(r"^(?P<stamp>.+?)\s+(?P<zone>[A-Za-z]{1,5})$")

# java.util.Date#toString(): "Mon Jan 15 10:30:00 IST 2024"
_JAVA_DATE = re.compile(
    r"^(?P<head>[A-Za-z]{3} [A-Za-z]{3} \d{1,2} \d{2}:\d{2}:\d{2}) (?P<zone>[A-Za-z]{1,5}) (?P<year>\d{4})$"
)

_LOCAL_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%a %b %d %H:%M:%S %Y",
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%m/%d/%Y",
)


def _parse_naive(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _LOCAL_FORMATS + _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _as_utc(parsed: datetime) -> datetime | None:
    # Naive values are interpreted in the server's local timezone.
    # Values at the edges of the calendar cannot be shifted and count as unparseable.
    try:
        if parsed.tzinfo is None:
            parsed = parsed.astimezone()
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError, OSError):
        logger.debug("Timestamp out of range ignored: %r", parsed)
        return None


def parse_datetime(value) -> datetime | None:
    """Parse a timestamp permissively. Returns None when nothing fits."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return _as_utc(datetime(value.year, value.month, value.day))

    text = str(value).strip()
    if not text:
        return None

    # Explicit offset or trailing Z: ISO parse handles it directly.
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00") if text.endswith("Z") else text)
    except ValueError:
        parsed = None
    if parsed is not None:
        return _as_utc(parsed)

    stamp, zone = None, None
    java = _JAVA_DATE.match(text)
    trailing = _TRAILING_WORD.match(text)
    if java:
        stamp, zone = f"{java.group('head')} {java.group('year')}", java.group("zone").upper()
    elif trailing:
        stamp, zone = trailing.group("stamp").strip(), trailing.group("zone").upper()

    if zone in _UTC_MARKERS:
        parsed = _parse_naive(stamp)
        return parsed.replace(tzinfo=timezone.utc) if parsed else None
    if zone in TIMEZONE_ABBREVIATIONS:
        parsed = _parse_naive(stamp)
        return _as_utc(parsed) if parsed else None

    parsed = _parse_naive(text)
    if parsed is None:
        logger.debug("Unparseable timestamp ignored: %r", text)
        return None
    return _as_utc(parsed)


def parse_date(value) -> date | None:
    """Parse a calendar date (spreadsheet cell or string). Returns None on bad input."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    parsed = parse_datetime(text)
    return parsed.date() if parsed else None
