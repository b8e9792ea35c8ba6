"""
Tests for Dose Bucketing Engine
Tests today-view placement of active commands
"""

import pytest
from datetime import date, timedelta

from domain.enums import Bucket, CommandStatus, EventType, Frequency, TimeSlot
from domain.event import EventData
from tests import NOW, at
from tools.dose_bucketing import compute_today_buckets, slot_bucket_for_hour


def bucket_of(result, command):
    matches = [item for item in result.all_items() if item.command_id == command.id]
    assert len(matches) == 1
    return matches[0]


class TestBucketBoundaries:
    """NOW is 14:00 UTC"""

    @pytest.mark.parametrize("time,expected", [
        ("14:00", Bucket.NOW),
        ("14:15", Bucket.NOW),
        ("14:16", Bucket.DUE_SOON),
        ("15:00", Bucket.DUE_SOON),
        ("18:00", Bucket.EVENING),
        ("22:00", Bucket.BEFORE_BED),
        ("13:59", Bucket.OVERDUE),
    ])
    def test_minutes_until_due(self, command_factory, time, expected):
        command = command_factory(times=[time])
        result = compute_today_buckets(NOW, [command], [], "UTC")
        assert bucket_of(result, command).bucket == expected

    def test_61_minutes_falls_back_to_slot(self, command_factory):
        command = command_factory(times=["15:01"], time_slot=TimeSlot.EVENING)
        result = compute_today_buckets(NOW, [command], [], "UTC")
        item = bucket_of(result, command)
        assert item.bucket == Bucket.EVENING
        assert item.minutes_until_due == 61

    def test_overdue_reports_minutes(self, command_factory):
        command = command_factory(times=["08:00"])
        result = compute_today_buckets(NOW, [command], [], "UTC")

        item = bucket_of(result, command)
        assert item.bucket == Bucket.OVERDUE
        assert item.minutes_overdue == 360
        assert result.summary.overdue == 1

    @pytest.mark.parametrize("hour,expected", [
        (6, Bucket.MORNING),
        (10, Bucket.MORNING),
        (11, Bucket.LUNCH),
        (14, Bucket.LUNCH),
        (17, Bucket.EVENING),
        (20, Bucket.EVENING),
        (21, Bucket.BEFORE_BED),
        (3, Bucket.BEFORE_BED),
    ])
    def test_hour_fallback(self, hour, expected):
        assert slot_bucket_for_hour(hour) == expected


class TestBucketAssignment:

    def test_every_command_in_exactly_one_bucket(self, command_factory, event_factory):
        commands = [
            command_factory(command_id="a", times=["08:00"]),
            command_factory(command_id="b", times=["14:10"]),
            command_factory(command_id="c", times=["14:40"]),
            command_factory(command_id="d", times=["19:00"]),
            command_factory(command_id="e", times=["09:00"]),
        ]
        events = [event_factory(commands[4], EventType.DOSE_TAKEN, at(9), recorded_at=at(9, 5))]

        result = compute_today_buckets(NOW, commands, events, "UTC")

        ids = [item.command_id for item in result.all_items()]
        assert sorted(ids) == ["a", "b", "c", "d", "e"]
        assert result.summary.total_commands == 5
        assert [i.command_id for i in result.completed] == ["e"]

    def test_deterministic(self, command_factory):
        commands = [command_factory(command_id=str(i), times=[f"{8 + i:02d}:30"]) for i in range(8)]
        first = compute_today_buckets(NOW, commands, [], "UTC")
        second = compute_today_buckets(NOW, list(reversed(commands)), [], "UTC")
        assert first.to_dict() == second.to_dict()

    def test_prn_and_inactive_skipped(self, command_factory):
        prn = command_factory(frequency=Frequency.AS_NEEDED)
        paused = command_factory(status=CommandStatus.PAUSED)
        result = compute_today_buckets(NOW, [prn, paused], [], "UTC")
        assert result.all_items() == []
        assert result.summary.total_commands == 0

    def test_not_due_today_skipped(self, command_factory):
        future = command_factory(start_date=date(2024, 3, 13))
        weekly = command_factory(frequency=Frequency.WEEKLY, start_date=date(2024, 3, 4))
        result = compute_today_buckets(NOW, [future, weekly], [], "UTC")
        assert result.all_items() == []

    def test_completed_item(self, command_factory, event_factory):
        command = command_factory(times=["08:00"])
        taken = event_factory(
            command, EventType.DOSE_TAKEN, at(8), recorded_at=at(8, 12), is_on_time=True, minutes_late=12
        )

        result = compute_today_buckets(NOW, [command], [taken], "UTC")

        item = bucket_of(result, command)
        assert item.bucket == Bucket.COMPLETED
        assert item.status_label == "Taken"
        assert item.completed_at == at(8, 12)
        assert item.is_on_time is True
        assert result.summary.completed == 1

    def test_missed_dose_is_completed(self, command_factory, event_factory):
        command = command_factory(times=["08:00"])
        missed = event_factory(command, EventType.DOSE_MISSED, at(8), recorded_at=at(9))
        result = compute_today_buckets(NOW, [command], [missed], "UTC")
        assert bucket_of(result, command).status_label == "Missed"

    def test_yesterdays_events_ignored(self, command_factory, event_factory):
        command = command_factory(times=["18:30"])
        yesterday = event_factory(command, EventType.DOSE_TAKEN, at(18, 30, day=11), recorded_at=at(18, 30, day=11))
        result = compute_today_buckets(NOW, [command], [yesterday], "UTC")
        assert bucket_of(result, command).bucket == Bucket.EVENING

    def test_snoozed_until_carried(self, command_factory, event_factory):
        command = command_factory(times=["14:10"])
        snooze = event_factory(
            command, EventType.DOSE_SNOOZED, at(14, 10), recorded_at=at(13, 50),
            event_data=EventData(snooze_minutes=30),
        )
        result = compute_today_buckets(NOW, [command], [snooze], "UTC")
        assert bucket_of(result, command).snoozed_until == at(14, 20)


class TestMultiDoseCommands:

    def test_first_unresolved_dose_decides(self, command_factory, event_factory):
        command = command_factory(frequency=Frequency.TWICE_DAILY, times=["08:00", "20:00"])
        taken = event_factory(command, EventType.DOSE_TAKEN, at(8), recorded_at=at(8, 3))

        result = compute_today_buckets(NOW, [command], [taken], "UTC")

        item = bucket_of(result, command)
        assert item.bucket == Bucket.EVENING
        assert item.scheduled_time == "20:00"
        assert item.doses_today == 2
        assert item.doses_completed == 1
        assert result.summary.total_doses_today == 2

    def test_unresolved_morning_dose_keeps_command_overdue(self, command_factory):
        command = command_factory(frequency=Frequency.TWICE_DAILY, times=["08:00", "20:00"])
        result = compute_today_buckets(NOW, [command], [], "UTC")
        item = bucket_of(result, command)
        assert item.bucket == Bucket.OVERDUE
        assert item.scheduled_time == "08:00"


class TestTimezones:

    def test_local_day_and_time(self, command_factory):
        # 14:00 UTC is 10:00 in New York (EDT)
        command = command_factory(times=["10:30"])
        result = compute_today_buckets(NOW, [command], [], "America/New_York")

        item = bucket_of(result, command)
        assert result.for_date == date(2024, 3, 12)
        assert result.timezone == "America/New_York"
        assert item.bucket == Bucket.DUE_SOON
        assert item.scheduled_for == NOW + timedelta(minutes=30)

    def test_local_date_differs_from_utc(self, command_factory):
        # 14:00 UTC is 03:00 next day in Auckland (NZDT)
        result = compute_today_buckets(NOW, [command_factory(times=["08:00"])], [], "Pacific/Auckland")
        assert result.for_date == date(2024, 3, 13)
