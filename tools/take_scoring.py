"""
Take Scoring
Timing classification and adherence scores for a recorded dose
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from config import scheduling_config
from domain.enums import TimingCategory
from domain.event import AdherenceTracking
from tools.timezone_utils import floor_minutes_between


_DOSE_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")

# (max absolute minutes from schedule, timing accuracy)
TIMING_ACCURACY_STEPS = ((15, 100), (30, 90), (60, 75), (120, 50))
TIMING_ACCURACY_FLOOR = 25


@dataclass
class TakeScore:
    """Everything derived from a single take"""
    minutes_from_scheduled: int
    timing_category: TimingCategory
    is_on_time: bool
    minutes_late: int
    dose_accuracy: int
    timing_accuracy: int
    circumstance_compliance: int
    overall_score: float
    urgency_level: str

    def to_tracking(self) -> AdherenceTracking:
        return AdherenceTracking(
            dose_accuracy=self.dose_accuracy,
            timing_accuracy=self.timing_accuracy,
            circumstance_compliance=self.circumstance_compliance,
            overall_score=self.overall_score,
            timing_category=self.timing_category,
            minutes_from_scheduled=self.minutes_from_scheduled,
            urgency_level=self.urgency_level,
        )


def categorize_timing(minutes_from_scheduled: int) -> TimingCategory:
    on_time = scheduling_config.ON_TIME_WINDOW_MINUTES
    if minutes_from_scheduled < -on_time:
        return TimingCategory.EARLY
    if minutes_from_scheduled <= on_time:
        return TimingCategory.ON_TIME
    if minutes_from_scheduled <= scheduling_config.LATE_WINDOW_MINUTES:
        return TimingCategory.LATE
    return TimingCategory.VERY_LATE


def timing_accuracy(minutes_from_scheduled: int) -> int:
    deviation = abs(minutes_from_scheduled)
    for limit, score in TIMING_ACCURACY_STEPS:
        if deviation <= limit:
            return score
    return TIMING_ACCURACY_FLOOR


def dose_accuracy(prescribed_dosage: str, actual_dosage: Optional[str] = None) -> int:
    if not actual_dosage or actual_dosage == prescribed_dosage:
        return 100

    prescribed = _DOSE_NUMBER.search(prescribed_dosage or "")
    actual = _DOSE_NUMBER.search(actual_dosage)
    if not prescribed or not actual or float(prescribed.group(1)) == 0:
        return scheduling_config.UNPARSEABLE_DOSE_ACCURACY

    ratio = float(actual.group(1)) / float(prescribed.group(1))
    return min(100, int(round(ratio * 100)))


def circumstance_compliance(
    with_food: Optional[bool],
    should_take_with_food: bool,
    symptoms: Optional[Sequence[str]] = None,
) -> int:
    score = 100
    if with_food is False and should_take_with_food:
        score -= scheduling_config.MISSED_FOOD_PENALTY
    if symptoms:
        score -= scheduling_config.SYMPTOM_PENALTY
    return max(0, score)


def score_take(
    scheduled_for: datetime,
    taken_at: datetime,
    prescribed_dosage: str,
    actual_dosage: Optional[str] = None,
    with_food: Optional[bool] = None,
    should_take_with_food: bool = False,
    symptoms: Optional[Sequence[str]] = None,
) -> TakeScore:
    """
    Score a take against its scheduled time.

    Args:
        scheduled_for: When the dose was due
        taken_at: When it was taken
        prescribed_dosage: Dosage on the command, e.g. "500mg"
        actual_dosage: Dosage the patient reports, if different
        with_food: Whether it was taken with food, if reported
        should_take_with_food: Whether the medication should be taken with food
        symptoms: Symptoms reported with the take

    Returns:
        TakeScore with timing category and the three component scores
    """
    minutes = floor_minutes_between(taken_at, scheduled_for)
    category = categorize_timing(minutes)

    dose_score = dose_accuracy(prescribed_dosage, actual_dosage)
    timing_score = timing_accuracy(minutes)
    circumstance_score = circumstance_compliance(with_food, should_take_with_food, symptoms)
    overall = round((dose_score + timing_score + circumstance_score) / 3, 2)

    return TakeScore(
        minutes_from_scheduled=minutes,
        timing_category=category,
        is_on_time=abs(minutes) <= scheduling_config.ON_TIME_WINDOW_MINUTES,
        minutes_late=max(0, minutes),
        dose_accuracy=dose_score,
        timing_accuracy=timing_score,
        circumstance_compliance=circumstance_score,
        overall_score=overall,
        urgency_level="medium" if category == TimingCategory.VERY_LATE else "low",
    )
