"""
Adherence Math
Pure adherence metrics and streak calculations over replayed dose states
"""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
from zoneinfo import ZoneInfo

from config import scheduling_config
from domain.enums import EventType, TimingCategory
from tools.event_replay import DoseState
from tools.timezone_utils import local_date


STREAK_CATEGORIES = frozenset({TimingCategory.EARLY, TimingCategory.ON_TIME, TimingCategory.LATE})


@dataclass
class MedicationAdherence:
    command_id: str
    medication_name: str
    scheduled: int = 0
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    adherence_rate: float = 0.0
    on_time_rate: float = 0.0


@dataclass
class AdherenceMetrics:
    """Adherence over a date range; rates are fractions between 0 and 1"""
    total_scheduled: int = 0
    total_taken: int = 0
    total_missed: int = 0
    total_skipped: int = 0
    total_on_time: int = 0
    adherence_rate: float = 0.0
    on_time_rate: float = 0.0
    average_delay_minutes: float = 0.0
    by_medication: Dict[str, MedicationAdherence] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StreakInfo:
    current_streak: int = 0
    longest_streak: int = 0
    last_resolved_day: Optional[date] = None


def safe_rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator, 4)


def calculate_metrics(doses: Iterable[DoseState]) -> AdherenceMetrics:
    """
    Aggregate dose states into adherence metrics.

    Every dose counts as scheduled; callers exclude PRN commands and
    doses that are not yet due.
    """
    metrics = AdherenceMetrics()
    delays: List[int] = []
    on_time_by_command: Dict[str, int] = defaultdict(int)

    for dose in doses:
        med = metrics.by_medication.get(dose.command_id)
        if med is None:
            med = MedicationAdherence(command_id=dose.command_id, medication_name=dose.medication_name)
            metrics.by_medication[dose.command_id] = med

        metrics.total_scheduled += 1
        med.scheduled += 1

        if dose.outcome == EventType.DOSE_TAKEN:
            metrics.total_taken += 1
            med.taken += 1
            if dose.is_on_time:
                metrics.total_on_time += 1
                on_time_by_command[dose.command_id] += 1
            if dose.minutes_late:
                delays.append(dose.minutes_late)
        elif dose.outcome == EventType.DOSE_MISSED:
            metrics.total_missed += 1
            med.missed += 1
        elif dose.outcome == EventType.DOSE_SKIPPED:
            metrics.total_skipped += 1
            med.skipped += 1

    metrics.adherence_rate = safe_rate(metrics.total_taken, metrics.total_scheduled)
    metrics.on_time_rate = safe_rate(metrics.total_on_time, metrics.total_taken)
    metrics.average_delay_minutes = round(sum(delays) / len(delays), 2) if delays else 0.0

    for command_id, med in metrics.by_medication.items():
        med.adherence_rate = safe_rate(med.taken, med.scheduled)
        med.on_time_rate = safe_rate(on_time_by_command[command_id], med.taken)

    return metrics


def _day_outcomes(doses: Iterable[DoseState], zone: ZoneInfo):
    good: Set[date] = set()
    broken: Set[date] = set()
    resolved: Set[date] = set()
    for dose in doses:
        if not dose.is_resolved:
            continue
        day = local_date(dose.scheduled_for, zone)
        resolved.add(day)
        if dose.outcome == EventType.DOSE_MISSED:
            broken.add(day)
        elif dose.is_taken:
            if dose.timing_category == TimingCategory.VERY_LATE:
                broken.add(day)
            elif dose.timing_category in STREAK_CATEGORIES or dose.timing_category is None:
                good.add(day)
    return good - broken, resolved


def calculate_streak(doses: Iterable[DoseState], zone: ZoneInfo, today: Optional[date] = None) -> StreakInfo:
    """
    Count consecutive local days with a qualifying take.

    The current streak walks back from the most recent day that has a
    resolved dose. A missed dose, a very late take or a day without a
    qualifying take ends it.
    """
    good_days, resolved_days = _day_outcomes(doses, zone)
    if today is not None:
        resolved_days = {d for d in resolved_days if d <= today}
    if not resolved_days:
        return StreakInfo()

    last_day = max(resolved_days)
    current = 0
    day = last_day
    while day in good_days:
        current += 1
        day -= timedelta(days=1)

    longest = 0
    run = 0
    previous: Optional[date] = None
    for day in sorted(good_days):
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        longest = max(longest, run)
        previous = day

    return StreakInfo(current_streak=current, longest_streak=longest, last_resolved_day=last_day)


def new_milestones(
    streak_days: int,
    already_reported: Iterable[int],
    thresholds: Sequence[int] = tuple(scheduling_config.STREAK_MILESTONES),
) -> List[int]:
    """Thresholds reached by the streak that have not been reported yet"""
    reported = set(already_reported)
    return [t for t in sorted(thresholds) if streak_days >= t and t not in reported]
