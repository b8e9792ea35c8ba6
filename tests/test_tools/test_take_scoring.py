"""
Tests for Take Scoring
Tests timing categories and the three adherence component scores
"""

import pytest
from datetime import datetime, timedelta, timezone

from domain.enums import TimingCategory
from tools.take_scoring import (
    categorize_timing,
    circumstance_compliance,
    dose_accuracy,
    score_take,
    timing_accuracy,
)


SCHEDULED = datetime(2024, 3, 12, 8, 0, tzinfo=timezone.utc)


class TestTimingCategory:

    @pytest.mark.parametrize("minutes,expected", [
        (-31, TimingCategory.EARLY),
        (-30, TimingCategory.ON_TIME),
        (0, TimingCategory.ON_TIME),
        (30, TimingCategory.ON_TIME),
        (31, TimingCategory.LATE),
        (120, TimingCategory.LATE),
        (121, TimingCategory.VERY_LATE),
    ])
    def test_boundaries(self, minutes, expected):
        assert categorize_timing(minutes) == expected


class TestTimingAccuracy:

    @pytest.mark.parametrize("minutes,expected", [
        (0, 100),
        (15, 100),
        (-15, 100),
        (16, 90),
        (30, 90),
        (-45, 75),
        (60, 75),
        (120, 50),
        (121, 25),
        (-300, 25),
    ])
    def test_steps(self, minutes, expected):
        assert timing_accuracy(minutes) == expected


class TestDoseAccuracy:

    def test_unspecified_or_equal_is_full(self):
        assert dose_accuracy("500mg") == 100
        assert dose_accuracy("500mg", "500mg") == 100

    def test_ratio_of_amounts(self):
        assert dose_accuracy("500mg", "250mg") == 50
        assert dose_accuracy("10 mg", "7.5 mg") == 75

    def test_capped_at_100(self):
        assert dose_accuracy("500mg", "1000mg") == 100

    def test_unparseable_amount(self):
        assert dose_accuracy("500mg", "one tablet") == 90
        assert dose_accuracy("one tablet", "two tablets") == 90


class TestCircumstanceCompliance:

    def test_full_compliance(self):
        assert circumstance_compliance(True, True) == 100
        assert circumstance_compliance(None, True) == 100

    def test_missed_food(self):
        assert circumstance_compliance(False, True) == 80
        assert circumstance_compliance(False, False) == 100

    def test_symptoms(self):
        assert circumstance_compliance(True, True, ["nausea"]) == 90

    def test_both_penalties(self):
        assert circumstance_compliance(False, True, ["dizziness"]) == 70


class TestScoreTake:

    def test_on_time_take(self):
        score = score_take(SCHEDULED, SCHEDULED + timedelta(minutes=10), "500mg")

        assert score.minutes_from_scheduled == 10
        assert score.timing_category == TimingCategory.ON_TIME
        assert score.timing_accuracy == 100
        assert score.is_on_time is True
        assert score.minutes_late == 10
        assert score.overall_score == 100.0
        assert score.urgency_level == "low"

    def test_very_late_take(self):
        score = score_take(SCHEDULED, SCHEDULED + timedelta(hours=3), "500mg")

        assert score.minutes_from_scheduled == 180
        assert score.timing_category == TimingCategory.VERY_LATE
        assert score.timing_accuracy == 25
        assert score.is_on_time is False
        assert score.urgency_level == "medium"

    def test_early_take_is_not_late(self):
        score = score_take(SCHEDULED, SCHEDULED - timedelta(minutes=45), "500mg")

        assert score.minutes_from_scheduled == -45
        assert score.timing_category == TimingCategory.EARLY
        assert score.minutes_late == 0

    def test_overall_is_mean(self):
        score = score_take(
            SCHEDULED,
            SCHEDULED + timedelta(minutes=5),
            "500mg",
            with_food=False,
            should_take_with_food=True,
        )
        assert score.overall_score == 93.33

    def test_partial_minutes_floor(self):
        score = score_take(SCHEDULED, SCHEDULED + timedelta(minutes=30, seconds=59), "500mg")
        assert score.minutes_from_scheduled == 30
        assert score.timing_category == TimingCategory.ON_TIME

    def test_tracking_document(self):
        tracking = score_take(SCHEDULED, SCHEDULED, "500mg", "250mg").to_tracking()
        assert tracking.dose_accuracy == 50
        assert tracking.timing_category == TimingCategory.ON_TIME
