"""
Grace Period Policy
How late a dose may be taken before it counts as missed
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import FrozenSet, Iterable, Optional
from zoneinfo import ZoneInfo

from config import scheduling_config
from domain.command import MedicationCommand
from domain.enums import Frequency, MedicationType
from exceptions import ValidationError
from tools.timezone_utils import get_zone, local_date


CRITICAL_KEYWORDS = ("insulin", "heart", "cardiac", "blood thinner", "warfarin", "anticoagulant")
VITAMIN_KEYWORDS = ("vitamin", "supplement", "multivitamin", "calcium", "iron", "omega")
PRN_KEYWORDS = ("as needed", "prn")


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def _last_weekday(year: int, month: int, weekday: int) -> date:
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last = next_month - timedelta(days=1)
    return last - timedelta(days=(last.weekday() - weekday) % 7)


@lru_cache(maxsize=64)
def us_federal_holidays(year: int) -> FrozenSet[date]:
    """US federal holidays on their calendar dates (not observed dates)"""
    return frozenset({
        date(year, 1, 1),                  # New Year's Day
        _nth_weekday(year, 1, 0, 3),       # Martin Luther King Jr. Day
        _nth_weekday(year, 2, 0, 3),       # Presidents Day
        _last_weekday(year, 5, 0),         # Memorial Day
        date(year, 7, 4),                  # Independence Day
        _nth_weekday(year, 9, 0, 1),       # Labor Day
        _nth_weekday(year, 10, 0, 2),      # Columbus Day
        date(year, 11, 11),                # Veterans Day
        _nth_weekday(year, 11, 3, 4),      # Thanksgiving
        date(year, 12, 25),                # Christmas Day
    })


@dataclass
class CalendarContext:
    """Patient-local calendar facts needed to stretch a grace period"""
    zone: ZoneInfo
    holidays: FrozenSet[date] = field(default_factory=frozenset)
    use_federal_holidays: bool = False
    weekend_multiplier: float = scheduling_config.WEEKEND_MULTIPLIER
    holiday_multiplier: float = scheduling_config.HOLIDAY_MULTIPLIER

    @classmethod
    def for_timezone(
        cls,
        tz_name: str,
        holidays: Iterable[date] = (),
        use_federal_holidays: bool = False,
    ) -> "CalendarContext":
        return cls(
            zone=get_zone(tz_name),
            holidays=frozenset(holidays),
            use_federal_holidays=use_federal_holidays,
        )

    def is_weekend(self, day: date) -> bool:
        return day.weekday() >= 5

    def is_holiday(self, day: date) -> bool:
        if day in self.holidays:
            return True
        return self.use_federal_holidays and day in us_federal_holidays(day.year)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolve_grace_period(
    medication_type,
    scheduled_for: datetime,
    calendar_context: CalendarContext,
    base_minutes: Optional[int] = None,
    weekend_multiplier: Optional[float] = None,
    holiday_multiplier: Optional[float] = None,
) -> int:
    """
    Resolve the grace period in minutes for one scheduled dose.

    A holiday multiplier replaces the weekend multiplier rather than
    stacking with it. Weekend and holiday are judged on the patient-local
    date of scheduled_for.
    """
    try:
        med_type = MedicationType(medication_type)
    except ValueError as e:
        raise ValidationError("medication_type", f"unknown medication type '{medication_type}'") from e

    if base_minutes is None:
        base_minutes = scheduling_config.GRACE_PERIOD_BASE_MINUTES[med_type.value]
    if base_minutes < 0:
        raise ValidationError("base_minutes", "must not be negative")

    day = local_date(scheduled_for, calendar_context.zone)
    if calendar_context.is_holiday(day):
        multiplier = holiday_multiplier or calendar_context.holiday_multiplier
    elif calendar_context.is_weekend(day):
        multiplier = weekend_multiplier or calendar_context.weekend_multiplier
    else:
        multiplier = 1.0

    return _round_half_up(base_minutes * multiplier)


def grace_period_for_command(
    command: MedicationCommand,
    scheduled_for: datetime,
    calendar_context: CalendarContext,
) -> int:
    """Grace period using the command's own settings"""
    settings = command.grace_period
    medication_type = MedicationType.PRN if command.is_prn else settings.medication_type
    return resolve_grace_period(
        medication_type,
        scheduled_for,
        calendar_context,
        base_minutes=settings.default_minutes if medication_type != MedicationType.PRN else 0,
        weekend_multiplier=settings.weekend_multiplier,
        holiday_multiplier=settings.holiday_multiplier,
    )


def grace_period_end(
    command: MedicationCommand,
    scheduled_for: datetime,
    calendar_context: CalendarContext,
) -> datetime:
    minutes = grace_period_for_command(command, scheduled_for, calendar_context)
    return scheduled_for + timedelta(minutes=minutes)


def classify_medication_type(medication_name: str, frequency=None) -> MedicationType:
    """Keyword classification used when a command does not state its type"""
    if frequency is not None:
        freq_text = frequency.value if isinstance(frequency, Frequency) else str(frequency)
        freq_text = freq_text.lower().replace("_", " ")
        if any(k in freq_text for k in PRN_KEYWORDS):
            return MedicationType.PRN

    name = (medication_name or "").lower()
    if any(k in name for k in CRITICAL_KEYWORDS):
        return MedicationType.CRITICAL
    if any(k in name for k in VITAMIN_KEYWORDS):
        return MedicationType.VITAMIN
    return MedicationType.STANDARD
