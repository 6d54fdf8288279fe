"""
Timezone utilities for nemo-calendar.

All occurrence comparisons happen in one canonical zone: the configured
local zone. Floating (zone-less) datetimes are used for all-day events and
are interpreted as wall-clock time in that zone.
"""

from datetime import datetime, date
from typing import Optional
import sys
import time as _time
import pytz


# Default timezone - can be overridden by config
_local_timezone_name: str = "UTC"


def set_timezone(timezone_name: str):
    """Set the canonical local timezone."""
    global _local_timezone_name
    _local_timezone_name = timezone_name


def get_timezone_name() -> str:
    """Name of the configured canonical timezone."""
    return _local_timezone_name


def get_local_timezone():
    """
    Get the canonical timezone as a pytz timezone object.

    Returns:
        pytz timezone object for the configured local timezone.
    """
    try:
        return pytz.timezone(_local_timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback: try system timezone name
        try:
            return pytz.timezone(_time.tzname[0])
        except pytz.UnknownTimeZoneError:
            # Last resort: calculate offset and use fixed offset timezone
            is_dst = _time.localtime().tm_isdst
            if is_dst:
                offset_seconds = -_time.altzone
            else:
                offset_seconds = -_time.timezone
            return pytz.FixedOffset(offset_seconds // 60)


def lookup_timezone(timezone_name: str):
    """
    Resolve a timezone identifier.

    Returns:
        The pytz timezone, or None (with a warning) when the name is unknown.
    """
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        print(f"Warning: unknown time zone '{timezone_name}'", file=sys.stderr)
        return None


def is_floating(dt: datetime) -> bool:
    """True for datetimes without an associated zone."""
    return dt.tzinfo is None


def localize(tz, naive: datetime) -> datetime:
    """Attach a zone to a wall-clock datetime, honouring pytz DST rules."""
    if hasattr(tz, 'localize'):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def to_local_datetime(dt: datetime) -> datetime:
    """
    Convert an aware datetime to the canonical zone.

    Args:
        dt: A datetime object, typically in UTC with tzinfo set.

    Returns:
        A timezone-aware datetime in the local timezone.
        If input has no tzinfo, returns it unchanged.
    """
    if dt.tzinfo is not None:
        local_tz = get_local_timezone()
        return dt.astimezone(local_tz)
    return dt


def to_utc_datetime(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Args:
        dt: A datetime object; naive values are taken as local time.

    Returns:
        A timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        # Assume it's in local timezone
        local_tz = get_local_timezone()
        local_dt = localize(local_tz, dt)
        return local_dt.astimezone(pytz.UTC)
    else:
        return dt.astimezone(pytz.UTC)


def to_local_naive(dt: datetime) -> datetime:
    """
    Wall-clock reading of a datetime in the canonical zone, without tzinfo.

    Used when comparing against floating (all-day) recurrences.
    """
    if dt.tzinfo is not None:
        local_dt = to_local_datetime(dt)
        return local_dt.replace(tzinfo=None)
    return dt


def to_zone_naive(dt: datetime, tz) -> datetime:
    """Wall-clock reading of ``dt`` in ``tz``; naive input is taken as local time."""
    return to_utc_datetime(dt).astimezone(tz).replace(tzinfo=None)


def as_datetime(value) -> datetime:
    """Promote a bare date to a floating midnight datetime."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time())
    return value


def zone_name(dt: Optional[datetime]) -> Optional[str]:
    """IANA name of the zone attached to ``dt`` if it has one."""
    if dt is None or dt.tzinfo is None:
        return None
    return getattr(dt.tzinfo, 'zone', None)
