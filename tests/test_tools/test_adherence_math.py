"""
Tests for Adherence Math
"""

from datetime import date
from zoneinfo import ZoneInfo

from domain.enums import EventType, TimingCategory
from tests import at
from tools.adherence_math import calculate_metrics, calculate_streak, new_milestones, safe_rate
from tools.event_replay import DoseState


UTC = ZoneInfo("UTC")


def dose(command_id="cmd-1", day=12, hour=8, outcome=None, on_time=None, late=None, category=None):
    return DoseState(
        command_id=command_id,
        scheduled_for=at(hour, day=day),
        medication_name=f"Med {command_id}",
        outcome=outcome,
        is_on_time=on_time,
        minutes_late=late,
        timing_category=category,
    )


def taken(day, category=TimingCategory.ON_TIME, command_id="cmd-1"):
    return dose(command_id=command_id, day=day, outcome=EventType.DOSE_TAKEN, on_time=True, late=0,
                category=category)


def missed(day, command_id="cmd-1"):
    return dose(command_id=command_id, day=day, outcome=EventType.DOSE_MISSED)


class TestSafeRate:

    def test_zero_denominator(self):
        assert safe_rate(0, 0) == 0.0
        assert safe_rate(3, 0) == 0.0

    def test_fraction(self):
        assert safe_rate(2, 3) == 0.6667


class TestCalculateMetrics:

    def test_empty(self):
        metrics = calculate_metrics([])
        assert metrics.total_scheduled == 0
        assert metrics.adherence_rate == 0.0
        assert metrics.on_time_rate == 0.0

    def test_mixed_outcomes(self):
        doses = [
            dose(outcome=EventType.DOSE_TAKEN, on_time=True, late=10),
            dose(hour=20, outcome=EventType.DOSE_TAKEN, on_time=False, late=45),
            dose(day=11, outcome=EventType.DOSE_MISSED),
            dose(day=11, hour=20, outcome=EventType.DOSE_SKIPPED),
        ]

        metrics = calculate_metrics(doses)

        assert metrics.total_scheduled == 4
        assert metrics.total_taken == 2
        assert metrics.total_missed == 1
        assert metrics.total_skipped == 1
        assert metrics.adherence_rate == 0.5
        assert metrics.on_time_rate == 0.5
        assert metrics.average_delay_minutes == 27.5

    def test_unresolved_dose_counts_as_scheduled(self):
        metrics = calculate_metrics([dose(), dose(hour=20, outcome=EventType.DOSE_TAKEN, on_time=True)])
        assert metrics.total_scheduled == 2
        assert metrics.adherence_rate == 0.5

    def test_by_medication(self):
        doses = [
            dose(command_id="a", outcome=EventType.DOSE_TAKEN, on_time=True),
            dose(command_id="b", outcome=EventType.DOSE_MISSED),
        ]

        metrics = calculate_metrics(doses)

        assert metrics.by_medication["a"].adherence_rate == 1.0
        assert metrics.by_medication["a"].on_time_rate == 1.0
        assert metrics.by_medication["b"].adherence_rate == 0.0
        assert metrics.by_medication["b"].medication_name == "Med b"


class TestCalculateStreak:

    def test_no_doses(self):
        streak = calculate_streak([], UTC)
        assert streak.current_streak == 0
        assert streak.longest_streak == 0

    def test_consecutive_days(self):
        streak = calculate_streak([taken(d) for d in (9, 10, 11, 12)], UTC)
        assert streak.current_streak == 4
        assert streak.longest_streak == 4
        assert streak.last_resolved_day == date(2024, 3, 12)

    def test_missed_dose_breaks_streak(self):
        doses = [taken(d) for d in (8, 9, 10, 11, 12)]
        doses.append(missed(10, command_id="cmd-2"))

        streak = calculate_streak(doses, UTC)

        assert streak.current_streak == 2
        assert streak.longest_streak == 2

    def test_very_late_breaks_streak(self):
        doses = [taken(10), taken(11, TimingCategory.VERY_LATE), taken(12)]
        streak = calculate_streak(doses, UTC)
        assert streak.current_streak == 1

    def test_late_keeps_streak(self):
        doses = [taken(11, TimingCategory.LATE), taken(12, TimingCategory.EARLY)]
        assert calculate_streak(doses, UTC).current_streak == 2

    def test_gap_day_ends_streak(self):
        streak = calculate_streak([taken(8), taken(9), taken(10), taken(12)], UTC)
        assert streak.current_streak == 1
        assert streak.longest_streak == 3

    def test_future_days_ignored(self):
        streak = calculate_streak([taken(11), taken(12), missed(13)], UTC, today=date(2024, 3, 12))
        assert streak.current_streak == 2

    def test_unresolved_doses_ignored(self):
        streak = calculate_streak([taken(11), dose(day=12)], UTC)
        assert streak.current_streak == 1
        assert streak.last_resolved_day == date(2024, 3, 11)


class TestNewMilestones:

    def test_reached_thresholds(self):
        assert new_milestones(7, []) == [7]
        assert new_milestones(31, [7], thresholds=(7, 30, 100)) == [30]

    def test_already_reported(self):
        assert new_milestones(8, [7]) == []

    def test_below_first_threshold(self):
        assert new_milestones(6, []) == []
