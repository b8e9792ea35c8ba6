"""
Schedule Computer
Turns a frequency and patient time-bucket preferences into daily dose times
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Set

from config import scheduling_config
from domain.command import MedicationCommand, normalize_hhmm
from domain.enums import Frequency, TimeSlot
from domain.preferences import PatientTimePreferences, TimeBucketWindow
from exceptions import InvariantViolation, ValidationError
from tools.timezone_utils import hhmm_to_minutes


logger = logging.getLogger(__name__)


MINUTES_PER_DAY = 24 * 60

# Buckets consumed by each frequency, in patient-day order
FREQUENCY_BUCKETS: Dict[Frequency, List[str]] = {
    Frequency.DAILY: ["morning"],
    Frequency.TWICE_DAILY: ["morning", "evening"],
    Frequency.THREE_TIMES_DAILY: ["morning", "lunch", "evening"],
    Frequency.FOUR_TIMES_DAILY: ["morning", "lunch", "evening", "before_bed"],
    Frequency.WEEKLY: ["morning"],
    Frequency.MONTHLY: ["morning"],
    Frequency.AS_NEEDED: [],
}

_BUCKET_ALIASES = {
    "morning": "morning",
    "lunch": "lunch",
    "evening": "evening",
    "before_bed": "before_bed",
    TimeSlot.BEFORE_BED.value: "before_bed",
}


@dataclass
class BucketValidationResult:
    """Outcome of checking a patient's time-bucket windows"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class SeparationConflict:
    medication_name: str
    other_medication_name: str
    time: str
    other_time: str
    gap_minutes: int
    required_minutes: int


def parse_frequency(frequency) -> Frequency:
    try:
        return Frequency(frequency)
    except ValueError as e:
        raise ValidationError("frequency", f"unknown frequency '{frequency}'") from e


def is_time_in_window(hhmm: str, start: str, end: str) -> bool:
    """Inclusive window membership; start > end means the window wraps midnight"""
    t, s, e = hhmm_to_minutes(hhmm), hhmm_to_minutes(start), hhmm_to_minutes(end)
    if s <= e:
        return s <= t <= e
    return t >= s or t <= e


def _window_minutes(window: TimeBucketWindow) -> Set[int]:
    s, e = hhmm_to_minutes(window.start), hhmm_to_minutes(window.end)
    if s <= e:
        return set(range(s, e + 1))
    return set(range(s, MINUTES_PER_DAY)) | set(range(0, e + 1))


def validate_time_buckets(preferences: PatientTimePreferences) -> BucketValidationResult:
    """
    Check every bucket window of a patient's preferences.

    Zero-length windows and defaults outside their own window are errors;
    windows that overlap each other only produce warnings.
    """
    result = BucketValidationResult()
    buckets = preferences.buckets()

    for name, window in buckets.items():
        if window.start == window.end:
            result.errors.append(f"{name}: window start and end are both {window.start}")
            continue
        if not is_time_in_window(window.default_time, window.start, window.end):
            result.errors.append(
                f"{name}: default time {window.default_time} is outside its window "
                f"{window.start}-{window.end}"
            )

    names = list(buckets)
    for i, first in enumerate(names):
        for second in names[i + 1:]:
            if _window_minutes(buckets[first]) & _window_minutes(buckets[second]):
                result.warnings.append(f"{first} and {second} windows overlap")

    return result


def compute_schedule_times(
    frequency,
    patient_time_preferences: Optional[PatientTimePreferences] = None,
    custom_overrides: Optional[Mapping[str, str]] = None,
) -> List[str]:
    """
    Compute the ordered daily dose times for a frequency.

    Args:
        frequency: Frequency enum or its string value
        patient_time_preferences: Bucket windows; their default times are used
        custom_overrides: Bucket name -> HH:MM, always wins over the default

    Returns:
        HH:MM strings in patient-day bucket order (empty for as_needed)
    """
    freq = parse_frequency(frequency)
    buckets = FREQUENCY_BUCKETS[freq]

    if patient_time_preferences is not None:
        validation = validate_time_buckets(patient_time_preferences)
        if not validation.is_valid:
            raise InvariantViolation(
                "Invalid time bucket configuration: " + "; ".join(validation.errors),
                {"errors": validation.errors},
            )
        windows = patient_time_preferences.buckets()
        times = [windows[b].default_time for b in buckets]
    else:
        times = list(scheduling_config.DEFAULT_FREQUENCY_TIMES[freq.value])

    for raw_key, value in (custom_overrides or {}).items():
        key = _BUCKET_ALIASES.get(raw_key)
        if key is None:
            raise ValidationError("custom_overrides", f"unknown time bucket '{raw_key}'")
        try:
            override = normalize_hhmm(value)
        except ValueError as e:
            raise ValidationError("custom_overrides", str(e)) from e
        if key in buckets:
            times[buckets.index(key)] = override

    return times


def is_due_on(command: MedicationCommand, day: date) -> bool:
    """Whether a command has scheduled doses on a patient-local day"""
    schedule = command.schedule
    if schedule.frequency == Frequency.AS_NEEDED:
        return False
    if day < schedule.start_date:
        return False
    if schedule.end_date is not None and day > schedule.end_date:
        return False

    if schedule.frequency == Frequency.WEEKLY:
        return day.weekday() == schedule.start_date.weekday()
    if schedule.frequency == Frequency.MONTHLY:
        last_day = calendar.monthrange(day.year, day.month)[1]
        return day.day == min(schedule.start_date.day, last_day)
    return True


def _circular_gap(a: str, b: str) -> int:
    diff = abs(hhmm_to_minutes(a) - hhmm_to_minutes(b))
    return min(diff, MINUTES_PER_DAY - diff)


def find_separation_conflicts(
    command: MedicationCommand,
    others: Sequence[MedicationCommand],
) -> List[SeparationConflict]:
    """Dose times of other commands that sit closer than a separation rule allows"""
    conflicts = []
    for rule in command.preferences.separation_rules:
        target = rule.medication_name.strip().lower()
        for other in others:
            if other.id == command.id or other.medication.name.strip().lower() != target:
                continue
            for t in command.schedule.times:
                for other_t in other.schedule.times:
                    gap = _circular_gap(t, other_t)
                    if gap < rule.min_minutes:
                        conflicts.append(SeparationConflict(
                            medication_name=command.medication.name,
                            other_medication_name=other.medication.name,
                            time=t,
                            other_time=other_t,
                            gap_minutes=gap,
                            required_minutes=rule.min_minutes,
                        ))
    if conflicts:
        logger.info(f"{len(conflicts)} separation conflicts for command {command.id}")
    return conflicts
