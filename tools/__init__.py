"""
Tools Package
Pure scheduling, bucketing and adherence algorithms
"""

from .schedule_computer import (
    compute_schedule_times,
    validate_time_buckets,
    is_time_in_window,
    is_due_on,
    find_separation_conflicts,
    BucketValidationResult,
)

from .grace_period import (
    CalendarContext,
    resolve_grace_period,
    classify_medication_type,
    us_federal_holidays,
)

from .take_scoring import (
    TakeScore,
    score_take,
    categorize_timing,
)

from .event_replay import (
    DoseState,
    apply_event,
    derive_dose_states,
)

from .dose_bucketing import (
    BucketItem,
    TodayBuckets,
    compute_today_buckets,
)

from .adherence_math import (
    AdherenceMetrics,
    StreakInfo,
    calculate_metrics,
    calculate_streak,
    new_milestones,
)


__all__ = [
    # Schedule computer
    "compute_schedule_times",
    "validate_time_buckets",
    "is_time_in_window",
    "is_due_on",
    "find_separation_conflicts",
    "BucketValidationResult",
    # Grace period
    "CalendarContext",
    "resolve_grace_period",
    "classify_medication_type",
    "us_federal_holidays",
    # Take scoring
    "TakeScore",
    "score_take",
    "categorize_timing",
    # Event replay
    "DoseState",
    "apply_event",
    "derive_dose_states",
    # Bucketing
    "BucketItem",
    "TodayBuckets",
    "compute_today_buckets",
    # Adherence
    "AdherenceMetrics",
    "StreakInfo",
    "calculate_metrics",
    "calculate_streak",
    "new_milestones",
]
