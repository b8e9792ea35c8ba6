"""
Tests for Command Service
Tests command creation, the status state machine and deletes
"""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from domain.command import CommandPreferences, MedicationInfo, ScheduleConfig, SeparationRule
from domain.enums import CommandStatus, EventType, Frequency, MedicationType
from domain.preferences import PatientTimePreferences, TimeBucketWindow
from exceptions import (
    ConcurrentModification,
    InvalidTransition,
    NotFound,
    TransactionFailed,
    ValidationError,
)
from services.command_service import ALLOWED_TRANSITIONS, can_transition
from services.repository import EventQuery
from tests import PATIENT_ID, at


# =============================================================================
# Create
# =============================================================================

class TestCreateCommand:

    @pytest.mark.asyncio
    async def test_explicit_times(self, daily_command, repository):
        stored = await repository.get_command(daily_command.id)

        assert stored.schedule.times == ["08:00"]
        assert stored.status.current == CommandStatus.ACTIVE
        assert stored.metadata.version == 1
        assert stored.metadata.checksum == stored.compute_checksum()
        assert len(stored.metadata.checksum) == 64

    @pytest.mark.asyncio
    async def test_times_from_defaults_without_preferences(self, container, medication_info):
        command = await container.commands.create_command(
            patient_id="patient-without-prefs",
            medication=medication_info,
            frequency="twice_daily",
            start_date=date(2024, 3, 1),
            actor="doctor",
        )
        assert command.schedule.times == ["08:00", "20:00"]

    @pytest.mark.asyncio
    async def test_times_from_patient_buckets(self, container, repository, medication_info):
        await repository.put_time_preferences(PatientTimePreferences(
            patient_id=PATIENT_ID,
            timezone="UTC",
            morning=TimeBucketWindow(start="05:00", end="07:00", default_time="06:30"),
        ))

        command = await container.commands.create_command(
            patient_id=PATIENT_ID,
            medication=medication_info,
            frequency=Frequency.TWICE_DAILY,
            start_date=date(2024, 3, 1),
            actor="doctor",
            time_overrides={"evening": "19:15"},
        )
        assert command.schedule.times == ["06:30", "19:15"]

    @pytest.mark.asyncio
    async def test_prn_command(self, prn_command):
        assert prn_command.is_prn
        assert prn_command.schedule.times == []
        assert prn_command.grace_period.medication_type == MedicationType.PRN

    @pytest.mark.asyncio
    async def test_medication_type_classified(self, container):
        command = await container.commands.create_command(
            patient_id=PATIENT_ID,
            medication=MedicationInfo(name="Warfarin", dosage="5mg"),
            frequency=Frequency.DAILY,
            start_date=date(2024, 3, 1),
            actor="doctor",
        )
        assert command.grace_period.medication_type == MedicationType.CRITICAL

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, container, medication_info):
        with pytest.raises(ValidationError):
            await container.commands.create_command(
                patient_id=PATIENT_ID,
                medication=medication_info,
                frequency=Frequency.DAILY,
                start_date=date(2024, 3, 10),
                end_date=date(2024, 3, 1),
                actor="doctor",
            )

    @pytest.mark.asyncio
    async def test_actor_required(self, container, medication_info):
        with pytest.raises(ValidationError) as exc_info:
            await container.commands.create_command(
                patient_id=PATIENT_ID,
                medication=medication_info,
                frequency=Frequency.DAILY,
                start_date=date(2024, 3, 1),
                actor="  ",
            )
        assert exc_info.value.field == "actor"


# =============================================================================
# Read / Update
# =============================================================================

class TestUpdateCommand:

    @pytest.mark.asyncio
    async def test_get_unknown(self, container):
        with pytest.raises(NotFound):
            await container.commands.get_command("missing")

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, container, daily_command):
        schedule = daily_command.schedule.model_copy(update={"times": ["09:00"]})

        updated = await container.commands.update_command(daily_command.id, "doctor", schedule=schedule)

        assert updated.schedule.times == ["09:00"]
        assert updated.metadata.version == 2
        assert updated.metadata.checksum != daily_command.metadata.checksum

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, container, daily_command):
        await container.commands.update_command(
            daily_command.id, "doctor", medication=daily_command.medication.model_copy(update={"dosage": "1000mg"})
        )
        with pytest.raises(ConcurrentModification):
            await container.commands.update_command(
                daily_command.id, "doctor", expected_version=1,
                medication=daily_command.medication,
            )

    @pytest.mark.asyncio
    async def test_switch_to_as_needed(self, container, daily_command):
        schedule = ScheduleConfig(frequency=Frequency.AS_NEEDED, start_date=date(2024, 3, 1))
        updated = await container.commands.update_command(daily_command.id, "doctor", schedule=schedule)
        assert updated.is_prn
        assert updated.grace_period.medication_type == MedicationType.PRN

    @pytest.mark.asyncio
    async def test_terminal_command_not_editable(self, container, daily_command):
        await container.commands.change_status(daily_command.id, CommandStatus.DISCONTINUED, "stopped", "doctor")
        with pytest.raises(ValidationError):
            await container.commands.update_command(daily_command.id, "doctor", medication=daily_command.medication)

    @pytest.mark.asyncio
    async def test_list_by_status(self, container, daily_command, prn_command):
        await container.commands.change_status(prn_command.id, CommandStatus.PAUSED, "not needed", "patient")

        active = await container.commands.list_commands(PATIENT_ID, [CommandStatus.ACTIVE])
        everything = await container.commands.list_commands(PATIENT_ID)

        assert [c.id for c in active] == [daily_command.id]
        assert len(everything) == 2


# =============================================================================
# Status State Machine
# =============================================================================

class TestStatusTransitions:

    @pytest.mark.parametrize("from_status,to_status,allowed", [
        (CommandStatus.ACTIVE, CommandStatus.PAUSED, True),
        (CommandStatus.ACTIVE, CommandStatus.COMPLETED, True),
        (CommandStatus.PAUSED, CommandStatus.ACTIVE, True),
        (CommandStatus.HELD, CommandStatus.DISCONTINUED, True),
        (CommandStatus.PAUSED, CommandStatus.HELD, False),
        (CommandStatus.DISCONTINUED, CommandStatus.ACTIVE, False),
        (CommandStatus.COMPLETED, CommandStatus.ACTIVE, False),
    ])
    def test_transition_table(self, from_status, to_status, allowed):
        assert can_transition(from_status, to_status) is allowed

    def test_terminal_states_have_no_exits(self):
        assert not ALLOWED_TRANSITIONS[CommandStatus.DISCONTINUED]
        assert not ALLOWED_TRANSITIONS[CommandStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_change_status_writes_event(self, container, daily_command):
        command, event = await container.commands.change_status(
            daily_command.id, CommandStatus.PAUSED, "Travelling", "patient"
        )

        assert command.status.current == CommandStatus.PAUSED
        assert command.status.is_active is False
        assert command.metadata.version == 2
        assert event.event_type == EventType.STATUS_CHANGED
        assert event.event_data.old_status == CommandStatus.ACTIVE
        assert event.event_data.new_status == CommandStatus.PAUSED

        stored = await container.repository.query_events(EventQuery(
            command_id=daily_command.id, event_types=[EventType.STATUS_CHANGED]
        ))
        assert [e.id for e in stored] == [event.id]

    @pytest.mark.asyncio
    async def test_invalid_transition(self, container, daily_command):
        await container.commands.change_status(daily_command.id, CommandStatus.COMPLETED, "Course done", "doctor")

        with pytest.raises(InvalidTransition) as exc_info:
            await container.commands.change_status(daily_command.id, CommandStatus.ACTIVE, "restart", "doctor")

        assert exc_info.value.from_status == "completed"
        assert exc_info.value.to_status == "active"

    @pytest.mark.asyncio
    async def test_reason_required(self, container, daily_command):
        with pytest.raises(ValidationError):
            await container.commands.change_status(daily_command.id, CommandStatus.PAUSED, "", "patient")

    @pytest.mark.asyncio
    async def test_status_change_notifies(self, container, daily_command):
        container.commands.notifier = MagicMock()
        await container.commands.change_status(daily_command.id, CommandStatus.HELD, "Surgery", "doctor")
        container.commands.notifier.dispatch.assert_called_once()


# =============================================================================
# Deletes
# =============================================================================

class TestDeletes:

    @pytest.mark.asyncio
    async def test_soft_delete_is_idempotent(self, container, daily_command):
        first = await container.commands.soft_delete(daily_command.id, "Side effects", "doctor")
        second = await container.commands.soft_delete(daily_command.id, "Side effects", "doctor")

        assert first.status.current == CommandStatus.DISCONTINUED
        assert first.status.discontinuation_reason == "Side effects"
        assert second.metadata.version == first.metadata.version

        status_events = await container.repository.query_events(EventQuery(
            command_id=daily_command.id, event_types=[EventType.STATUS_CHANGED]
        ))
        assert len(status_events) == 1

    @pytest.mark.asyncio
    async def test_hard_delete_cascades(self, container, clock, daily_command):
        await container.events.mark_taken(daily_command.id, "patient", scheduled_for=at(8, day=11),
                                          taken_at=at(8, 5, day=11))
        clock.advance(minutes=1)
        await container.events.mark_taken(daily_command.id, "patient", scheduled_for=at(8), taken_at=at(8, 5))
        await container.daily_reset.run_daily_reset(PATIENT_ID, date(2024, 3, 11))

        result = await container.commands.hard_delete(daily_command.id, "admin")

        assert result.command_deleted is True
        assert result.events_deleted == 2
        assert await container.repository.get_command(daily_command.id) is None
        assert await container.repository.query_events(EventQuery(command_id=daily_command.id)) == []

    @pytest.mark.asyncio
    async def test_hard_delete_retry_after_failure(self, container, daily_command):
        await container.events.mark_taken(daily_command.id, "patient", scheduled_for=at(8), taken_at=at(8, 5))

        with patch.object(Session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("locked"))):
            with pytest.raises(TransactionFailed):
                await container.commands.hard_delete(daily_command.id, "admin")

        # Nothing was removed by the failed attempt
        assert await container.repository.get_command(daily_command.id) is not None
        assert len(await container.repository.query_events(EventQuery(command_id=daily_command.id))) == 1

        retry = await container.commands.hard_delete(daily_command.id, "admin")
        assert retry.command_deleted is True
        assert retry.events_deleted == 1

        again = await container.commands.hard_delete(daily_command.id, "admin")
        assert again.command_deleted is False
        assert again.events_deleted == 0


class TestSeparation:

    @pytest.mark.asyncio
    async def test_check_separation(self, container, clock, utc_patient):
        levothyroxine = await container.commands.create_command(
            patient_id=utc_patient,
            medication=MedicationInfo(name="Levothyroxine", dosage="50mcg"),
            frequency=Frequency.DAILY,
            start_date=date(2024, 3, 1),
            actor="doctor",
            times=["07:00"],
            preferences=CommandPreferences(
                separation_rules=[SeparationRule(medication_name="Calcium", min_minutes=240)]
            ),
        )
        await container.commands.create_command(
            patient_id=utc_patient,
            medication=MedicationInfo(name="Calcium", dosage="600mg"),
            frequency=Frequency.DAILY,
            start_date=date(2024, 3, 1),
            actor="doctor",
            times=["09:00"],
        )

        conflicts = await container.commands.check_separation(levothyroxine.id)

        assert len(conflicts) == 1
        assert conflicts[0].gap_minutes == 120
