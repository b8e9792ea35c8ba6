"""
Timezone Utilities
Conversions between UTC instants and patient-local days and clock times
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from exceptions import ValidationError


UTC = timezone.utc


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, raising ValidationError if unknown"""
    if not tz_name:
        raise ValidationError("timezone", "timezone is required")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError("timezone", f"unknown IANA timezone '{tz_name}'") from e


def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    return ensure_utc(dt).replace(tzinfo=None)


def local_date(dt: datetime, zone: ZoneInfo) -> date:
    return ensure_utc(dt).astimezone(zone).date()


def local_day_bounds(day: date, zone: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC [start, end) of a patient-local calendar day"""
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(UTC), end.astimezone(UTC)


def hhmm_to_minutes(value: str) -> int:
    hour, minute = value.split(":")
    return int(hour) * 60 + int(minute)


def parse_hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def combine_local(day: date, hhmm: str, zone: ZoneInfo) -> datetime:
    """UTC instant of a local wall-clock time on a given day"""
    return datetime.combine(day, parse_hhmm(hhmm), tzinfo=zone).astimezone(UTC)


def previous_local_day(now: datetime, zone: ZoneInfo) -> date:
    """The patient-local day that most recently ended"""
    return local_date(now, zone) - timedelta(days=1)


def floor_to_hour(dt: datetime) -> datetime:
    return ensure_utc(dt).replace(minute=0, second=0, microsecond=0)


def floor_minutes_between(later: datetime, earlier: datetime) -> int:
    """Whole minutes from earlier to later, floored (negative when later < earlier)"""
    seconds = (ensure_utc(later) - ensure_utc(earlier)).total_seconds()
    return int(seconds // 60)
