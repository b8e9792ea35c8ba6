"""
Command Service
Business logic for creating, updating, transitioning and deleting medication commands
"""

import logging
import uuid
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from domain.command import (
    CommandMetadata,
    CommandPreferences,
    CommandStatusInfo,
    GracePeriodSettings,
    MedicationCommand,
    MedicationInfo,
    ReminderSettings,
    ScheduleConfig,
)
from domain.enums import CommandStatus, EventType, Frequency, MedicationType, TimingType
from domain.event import EventContext, EventData, EventDraft, MedicationEvent
from exceptions import (
    ConcurrentModification,
    InvalidTransition,
    NotFound,
    ValidationError,
    validation_error_from_pydantic,
)
from services.clock import Clock
from services.notification_service import NotificationDispatcher, NotificationRequest, NotificationType
from services.repository import CascadeDeleteResult, MedicationRepository
from tools.grace_period import classify_medication_type
from tools.schedule_computer import (
    SeparationConflict,
    compute_schedule_times,
    find_separation_conflicts,
    parse_frequency,
)


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[CommandStatus, frozenset] = {
    CommandStatus.ACTIVE: frozenset({
        CommandStatus.PAUSED,
        CommandStatus.HELD,
        CommandStatus.DISCONTINUED,
        CommandStatus.COMPLETED,
    }),
    CommandStatus.PAUSED: frozenset({CommandStatus.ACTIVE, CommandStatus.DISCONTINUED}),
    CommandStatus.HELD: frozenset({CommandStatus.ACTIVE, CommandStatus.DISCONTINUED}),
    CommandStatus.DISCONTINUED: frozenset(),
    CommandStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES = frozenset({CommandStatus.DISCONTINUED, CommandStatus.COMPLETED})


def can_transition(from_status: CommandStatus, to_status: CommandStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[CommandStatus(from_status)]


def _require_text(field: str, value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, "is required")
    return value.strip()


class CommandService:
    """
    Service for medication command lifecycle
    """

    def __init__(
        self,
        repository: MedicationRepository,
        clock: Clock,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.notifier = notifier

    async def create_command(
        self,
        patient_id: str,
        medication: MedicationInfo,
        frequency,
        start_date: date,
        actor: str,
        times: Optional[Sequence[str]] = None,
        time_overrides: Optional[Mapping[str, str]] = None,
        end_date: Optional[date] = None,
        dosage_amount: Optional[str] = None,
        timing_type: TimingType = TimingType.ABSOLUTE,
        reminders: Optional[ReminderSettings] = None,
        grace_period: Optional[GracePeriodSettings] = None,
        preferences: Optional[CommandPreferences] = None,
        migrated_from: Optional[str] = None,
    ) -> MedicationCommand:
        """
        Create a new active medication command

        Args:
            patient_id: Owning patient
            medication: What is taken
            frequency: Frequency enum or value
            start_date: First local day doses are due
            actor: Who is creating the command
            times: Explicit HH:MM dose times; computed from preferences when omitted
            time_overrides: Per-bucket time overrides used when computing times
            grace_period: Grace settings; medication type is classified from the name when omitted

        Returns:
            The stored MedicationCommand
        """
        patient_id = _require_text("patient_id", patient_id)
        actor = _require_text("actor", actor)
        freq = parse_frequency(frequency)

        if times is None:
            time_preferences = await self.repository.get_time_preferences(patient_id)
            times = compute_schedule_times(freq, time_preferences, time_overrides)

        is_prn = freq == Frequency.AS_NEEDED
        if grace_period is None:
            grace_period = GracePeriodSettings(medication_type=classify_medication_type(medication.name, freq))
        if is_prn and grace_period.medication_type != MedicationType.PRN:
            grace_period = grace_period.model_copy(update={"medication_type": MedicationType.PRN})

        now = self.clock.now()
        try:
            command = MedicationCommand(
                id=str(uuid.uuid4()),
                patient_id=patient_id,
                medication=medication,
                schedule=ScheduleConfig(
                    frequency=freq,
                    times=list(times),
                    start_date=start_date,
                    end_date=end_date,
                    is_indefinite=end_date is None,
                    dosage_amount=dosage_amount,
                    timing_type=timing_type,
                ),
                reminders=reminders or ReminderSettings(),
                grace_period=grace_period,
                status=CommandStatusInfo(
                    current=CommandStatus.ACTIVE,
                    is_active=True,
                    is_prn=is_prn,
                    last_status_change=now,
                    status_changed_by=actor,
                ),
                preferences=preferences or CommandPreferences(),
                metadata=CommandMetadata(
                    version=1,
                    created_at=now,
                    created_by=actor,
                    updated_at=now,
                    updated_by=actor,
                    migrated_from=migrated_from,
                ),
            )
        except PydanticValidationError as e:
            raise validation_error_from_pydantic(e) from e

        command.metadata.checksum = command.compute_checksum()
        await self.repository.put_command(command)

        logger.info(
            f"Created command {command.id} for patient {patient_id}: "
            f"{medication.name} {freq.value} at {command.schedule.times}"
        )
        return command

    async def get_command(self, command_id: str) -> MedicationCommand:
        command = await self.repository.get_command(command_id)
        if command is None:
            raise NotFound("MedicationCommand", command_id)
        return command

    async def list_commands(
        self,
        patient_id: str,
        statuses: Optional[Sequence[CommandStatus]] = None,
    ) -> List[MedicationCommand]:
        return await self.repository.query_commands(patient_id, statuses)

    async def update_command(
        self,
        command_id: str,
        actor: str,
        expected_version: Optional[int] = None,
        medication: Optional[MedicationInfo] = None,
        schedule: Optional[ScheduleConfig] = None,
        reminders: Optional[ReminderSettings] = None,
        grace_period: Optional[GracePeriodSettings] = None,
        preferences: Optional[CommandPreferences] = None,
    ) -> MedicationCommand:
        """Replace parts of a command, bumping its version and checksum"""
        actor = _require_text("actor", actor)
        current = await self.get_command(command_id)
        if expected_version is not None and expected_version != current.metadata.version:
            raise ConcurrentModification("MedicationCommand", command_id, expected_version)
        if current.status.current in TERMINAL_STATUSES:
            raise ValidationError("status", f"command is {current.status.current.value} and cannot be edited")

        changes = {
            "medication": medication,
            "schedule": schedule,
            "reminders": reminders,
            "grace_period": grace_period,
            "preferences": preferences,
        }
        document = current.model_dump()
        for key, value in changes.items():
            if value is not None:
                document[key] = value.model_dump()

        now = self.clock.now()
        document["metadata"].update({
            "version": current.metadata.version + 1,
            "updated_at": now,
            "updated_by": actor,
        })
        try:
            updated = MedicationCommand.model_validate(document)
        except PydanticValidationError as e:
            raise validation_error_from_pydantic(e) from e

        if updated.schedule.frequency == Frequency.AS_NEEDED:
            updated.status.is_prn = True
            updated.grace_period.medication_type = MedicationType.PRN
        else:
            updated.status.is_prn = False

        updated.metadata.checksum = updated.compute_checksum()
        await self.repository.put_command(updated, expected_version=current.metadata.version)

        logger.info(f"Updated command {command_id} to version {updated.metadata.version}")
        return updated

    async def change_status(
        self,
        command_id: str,
        new_status: CommandStatus,
        reason: str,
        actor: str,
        expected_version: Optional[int] = None,
    ) -> Tuple[MedicationCommand, MedicationEvent]:
        """
        Move a command through the status state machine.

        The command write and its status_changed event are stored in one
        transaction guarded by the command version.
        """
        reason = _require_text("reason", reason)
        actor = _require_text("actor", actor)
        try:
            new_status = CommandStatus(new_status)
        except ValueError as e:
            raise ValidationError("status", f"unknown status '{new_status}'") from e

        current = await self.get_command(command_id)
        if expected_version is not None and expected_version != current.metadata.version:
            raise ConcurrentModification("MedicationCommand", command_id, expected_version)

        old_status = current.status.current
        if not can_transition(old_status, new_status):
            logger.warning(f"Rejected transition {old_status.value} -> {new_status.value} for command {command_id}")
            raise InvalidTransition(old_status.value, new_status.value)

        now = self.clock.now()
        updated = current.model_copy(deep=True)
        updated.status.current = new_status
        updated.status.is_active = new_status == CommandStatus.ACTIVE
        updated.status.last_status_change = now
        updated.status.status_changed_by = actor
        updated.status.status_reason = reason
        if new_status == CommandStatus.DISCONTINUED:
            updated.status.discontinued_at = now
            updated.status.discontinued_by = actor
            updated.status.discontinuation_reason = reason
        updated.metadata.version = current.metadata.version + 1
        updated.metadata.updated_at = now
        updated.metadata.updated_by = actor

        event = EventDraft(
            command_id=command_id,
            patient_id=current.patient_id,
            event_type=EventType.STATUS_CHANGED,
            event_data=EventData(old_status=old_status, new_status=new_status, status_reason=reason),
            context=EventContext(medication_name=current.medication.name, actor=actor),
        ).to_event(str(uuid.uuid4()), now)

        await self.repository.put_command_with_event(updated, current.metadata.version, event)

        logger.info(f"Command {command_id} status {old_status.value} -> {new_status.value} by {actor}")
        if self.notifier:
            self.notifier.dispatch(NotificationRequest(
                patient_id=current.patient_id,
                notification_type=NotificationType.STATUS_CHANGED,
                data={"medication": current.medication.name, "new_status": new_status.value},
            ))
        return updated, event

    async def soft_delete(self, command_id: str, reason: str, actor: str) -> MedicationCommand:
        """Discontinue a command, keeping its events"""
        current = await self.get_command(command_id)
        if current.status.current == CommandStatus.DISCONTINUED:
            return current
        updated, _ = await self.change_status(command_id, CommandStatus.DISCONTINUED, reason, actor)
        return updated

    async def hard_delete(self, command_id: str, actor: str) -> CascadeDeleteResult:
        """Remove a command and all of its events; repeatable after a failed attempt"""
        actor = _require_text("actor", actor)
        result = await self.repository.transactional_delete_command_and_events(command_id)
        logger.info(
            f"Hard delete of command {command_id} by {actor}: "
            f"{result.events_deleted} events removed"
        )
        return result

    async def check_separation(self, command_id: str) -> List[SeparationConflict]:
        command = await self.get_command(command_id)
        others = await self.repository.query_commands(command.patient_id, [CommandStatus.ACTIVE])
        return find_separation_conflicts(command, others)
