"""
Tests for Time Bucket Service
"""

import pytest
from datetime import date

from domain.command import MedicationInfo
from domain.enums import Bucket, Frequency
from domain.preferences import TimeBucketWindow
from exceptions import ConcurrentModification, ValidationError
from tests import PATIENT_ID, at


class TestPreferences:

    @pytest.mark.asyncio
    async def test_defaults_when_unset(self, container):
        preferences = await container.time_buckets.get_preferences("new-patient")
        assert preferences.morning.default_time == "08:00"
        assert preferences.timezone == "America/Chicago"

    @pytest.mark.asyncio
    async def test_night_shift_default_outside_window_rejected(self, container):
        with pytest.raises(ValidationError) as exc_info:
            await container.time_buckets.update_preferences(
                PATIENT_ID,
                before_bed=TimeBucketWindow(start="06:00", end="10:00", default_time="02:00"),
            )
        assert exc_info.value.field == "time_buckets"
        assert "before_bed" in exc_info.value.reason

        assert await container.repository.get_time_preferences(PATIENT_ID) is None

    @pytest.mark.asyncio
    async def test_wrap_around_window_accepted(self, container):
        result = await container.time_buckets.update_preferences(
            PATIENT_ID,
            before_bed=TimeBucketWindow(start="23:00", end="02:00", default_time="01:00"),
            timezone="Europe/London",
        )

        assert result.warnings == []
        assert result.preferences.before_bed.default_time == "01:00"
        stored = await container.time_buckets.get_preferences(PATIENT_ID)
        assert stored.timezone == "Europe/London"
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_overlap_returns_warning(self, container):
        result = await container.time_buckets.update_preferences(
            PATIENT_ID,
            morning=TimeBucketWindow(start="06:00", end="12:00", default_time="09:00"),
        )
        assert result.warnings == ["morning and lunch windows overlap"]

    @pytest.mark.asyncio
    async def test_unknown_timezone(self, container):
        with pytest.raises(ValidationError) as exc_info:
            await container.time_buckets.update_preferences(PATIENT_ID, timezone="Mars/Olympus_Mons")
        assert exc_info.value.field == "timezone"

    @pytest.mark.asyncio
    async def test_versioning(self, container, utc_patient):
        first = await container.time_buckets.update_preferences(utc_patient, holidays=[date(2024, 3, 20)])
        assert first.preferences.version == 2

        with pytest.raises(ConcurrentModification):
            await container.time_buckets.update_preferences(
                utc_patient, holidays=[], expected_version=1
            )


class TestTodayBuckets:

    @pytest.mark.asyncio
    async def test_today_view(self, container, daily_command):
        lunch = await container.commands.create_command(
            patient_id=PATIENT_ID,
            medication=MedicationInfo(name="Atorvastatin", dosage="20mg"),
            frequency=Frequency.DAILY,
            start_date=date(2024, 3, 1),
            actor="doctor",
            times=["14:10"],
        )
        await container.events.mark_taken(daily_command.id, "patient", scheduled_for=at(8), taken_at=at(8, 4))

        today = await container.time_buckets.get_today_buckets(PATIENT_ID)

        assert today.for_date == date(2024, 3, 12)
        assert [i.command_id for i in today.items(Bucket.COMPLETED)] == [daily_command.id]
        assert [i.command_id for i in today.items(Bucket.NOW)] == [lunch.id]
        assert today.summary.total_commands == 2
        assert today.summary.completed == 1

    @pytest.mark.asyncio
    async def test_undone_take_goes_back_to_overdue(self, container, daily_command):
        taken = await container.events.mark_taken(
            daily_command.id, "patient", scheduled_for=at(8), taken_at=at(8, 4)
        )
        await container.undo.undo(taken.event.id, "patient")

        today = await container.time_buckets.get_today_buckets(PATIENT_ID)

        item = today.items(Bucket.OVERDUE)[0]
        assert item.command_id == daily_command.id
        assert item.minutes_overdue == 360

    @pytest.mark.asyncio
    async def test_archived_events_ignored(self, container, daily_command):
        await container.events.mark_taken(daily_command.id, "patient", scheduled_for=at(8), taken_at=at(8, 4))
        await container.daily_reset.run_daily_reset(PATIENT_ID, date(2024, 3, 12))

        today = await container.time_buckets.get_today_buckets(PATIENT_ID)

        assert today.items(Bucket.COMPLETED) == []
        assert [i.command_id for i in today.items(Bucket.OVERDUE)] == [daily_command.id]

    @pytest.mark.asyncio
    async def test_default_timezone_without_preferences(self, container):
        today = await container.time_buckets.get_today_buckets("new-patient")
        assert today.timezone == "America/Chicago"
        assert today.all_items() == []
