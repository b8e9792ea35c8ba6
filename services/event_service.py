"""
Event Service
Appends dose events to the medication event log with duplicate protection
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from config import scheduling_config, settings
from domain.command import MedicationCommand
from domain.enums import (
    CommandStatus,
    EventType,
    MedicationType,
    RESOLVING_EVENT_TYPES,
    TriggerSource,
)
from domain.event import EventContext, EventData, EventDraft, MedicationEvent
from exceptions import DuplicateEvent, NotFound, ValidationError
from services.clock import Clock
from services.notification_service import NotificationDispatcher, NotificationRequest, NotificationType
from services.repository import EventQuery, MedicationRepository
from tools.event_replay import derive_dose_states, undone_event_ids
from tools.grace_period import CalendarContext, grace_period_end
from tools.schedule_computer import is_due_on
from tools.take_scoring import TakeScore, score_take
from tools.timezone_utils import (
    combine_local,
    ensure_utc,
    floor_to_hour,
    local_date,
    local_day_bounds,
)


logger = logging.getLogger(__name__)


SCHEDULER_ACTOR = "system:scheduler"


async def load_calendar_context(repository: MedicationRepository, patient_id: str) -> CalendarContext:
    """Calendar context from the patient's preferences, or the configured default timezone"""
    preferences = await repository.get_time_preferences(patient_id)
    if preferences is None:
        return CalendarContext.for_timezone(
            settings.DEFAULT_TIMEZONE,
            use_federal_holidays=settings.USE_US_FEDERAL_HOLIDAYS,
        )
    return CalendarContext.for_timezone(
        preferences.timezone,
        holidays=preferences.holidays,
        use_federal_holidays=settings.USE_US_FEDERAL_HOLIDAYS,
    )


@dataclass
class TakeResult:
    """Outcome of recording a take"""
    event: MedicationEvent
    score: TakeScore
    undo_available_until: datetime


class EventService:
    """
    Service for recording dose events
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

    # ==================== HELPERS ====================

    async def calendar_for(self, patient_id: str) -> CalendarContext:
        return await load_calendar_context(self.repository, patient_id)

    async def _get_command(self, command_id: str) -> MedicationCommand:
        command = await self.repository.get_command(command_id)
        if command is None:
            raise NotFound("MedicationCommand", command_id)
        return command

    async def find_duplicate(
        self,
        command_id: str,
        scheduled_for: datetime,
        now: datetime,
    ) -> Optional[MedicationEvent]:
        """
        Most recent resolving event for the same command and scheduled hour
        recorded inside the duplicate window, ignoring takes that were undone.
        """
        hour = floor_to_hour(scheduled_for)
        candidates = await self.repository.query_events(EventQuery(
            command_id=command_id,
            event_types=list(RESOLVING_EVENT_TYPES),
            scheduled_from=hour,
            scheduled_to=hour + timedelta(hours=1),
            recorded_since=now - timedelta(minutes=scheduling_config.DUPLICATE_WINDOW_MINUTES),
        ))
        if not candidates:
            return None

        undos = await self.repository.query_events(EventQuery(
            command_id=command_id,
            event_types=[EventType.DOSE_TAKEN_UNDONE],
            scheduled_from=hour,
            scheduled_to=hour + timedelta(hours=1),
        ))
        undone = undone_event_ids(undos)
        remaining = [e for e in candidates if e.id not in undone]
        return remaining[-1] if remaining else None

    def _notify(self, request: NotificationRequest) -> None:
        if self.notifier:
            self.notifier.dispatch(request)

    # ==================== CREATE ====================

    async def create_event(self, draft: EventDraft) -> MedicationEvent:
        """
        Validate and append an event.

        Resolving events for a dose already resolved within the duplicate
        window raise DuplicateEvent carrying the existing event id.
        """
        command = await self._get_command(draft.command_id)
        if command.patient_id != draft.patient_id:
            raise ValidationError("patient_id", "does not match the command's patient")

        now = self.clock.now()
        if draft.event_type in RESOLVING_EVENT_TYPES:
            if draft.scheduled_for is None:
                raise ValidationError("scheduled_for", f"is required for {draft.event_type.value}")
            existing = await self.find_duplicate(draft.command_id, draft.scheduled_for, now)
            if existing is not None:
                logger.warning(
                    f"Duplicate {draft.event_type.value} for command {draft.command_id} "
                    f"at {draft.scheduled_for.isoformat()}; existing event {existing.id}"
                )
                raise DuplicateEvent(existing.id)

        event = draft.to_event(str(uuid.uuid4()), now)
        await self.repository.append_event(event)
        logger.info(f"Recorded {event.event_type.value} {event.id} for command {event.command_id}")
        return event

    async def get_event(self, event_id: str) -> MedicationEvent:
        event = await self.repository.get_event(event_id)
        if event is None:
            raise NotFound("MedicationEvent", event_id)
        return event

    async def list_events(
        self,
        patient_id: str,
        scheduled_from: Optional[datetime] = None,
        scheduled_to: Optional[datetime] = None,
        command_id: Optional[str] = None,
        event_types: Optional[Sequence[EventType]] = None,
    ) -> List[MedicationEvent]:
        return await self.repository.query_events(EventQuery(
            patient_id=patient_id,
            command_id=command_id,
            event_types=event_types,
            scheduled_from=scheduled_from,
            scheduled_to=scheduled_to,
        ))

    # ==================== DOSE ACTIONS ====================

    def _require_active(self, command: MedicationCommand) -> None:
        if command.status.current != CommandStatus.ACTIVE:
            raise ValidationError("status", f"command is {command.status.current.value}, not active")

    async def mark_taken(
        self,
        command_id: str,
        actor: str,
        scheduled_for: Optional[datetime] = None,
        taken_at: Optional[datetime] = None,
        actual_dosage: Optional[str] = None,
        with_food: Optional[bool] = None,
        symptoms: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
    ) -> TakeResult:
        """
        Record a take and score it against its scheduled time

        Args:
            command_id: Command the dose belongs to
            actor: Who recorded the take
            scheduled_for: Scheduled dose time; defaults to taken_at for PRN commands
            taken_at: When it was taken; defaults to now
            actual_dosage: Dosage actually taken, if different from prescribed
            with_food: Whether it was taken with food
            symptoms: Symptoms reported at the time

        Returns:
            TakeResult with the stored event, its score and the undo deadline
        """
        command = await self._get_command(command_id)
        self._require_active(command)

        now = self.clock.now()
        taken_at = ensure_utc(taken_at) if taken_at else now
        if taken_at > now:
            raise ValidationError("taken_at", "cannot be in the future")
        if scheduled_for is None:
            if not command.is_prn:
                raise ValidationError("scheduled_for", "is required for scheduled medications")
            scheduled_for = taken_at
        scheduled_for = ensure_utc(scheduled_for)

        score = score_take(
            scheduled_for=scheduled_for,
            taken_at=taken_at,
            prescribed_dosage=command.medication.dosage,
            actual_dosage=actual_dosage,
            with_food=with_food,
            should_take_with_food=command.medication.should_take_with_food,
            symptoms=symptoms,
        )
        calendar = await self.calendar_for(command.patient_id)
        undo_until = now + timedelta(seconds=scheduling_config.UNDO_WINDOW_SECONDS)

        event = await self.create_event(EventDraft(
            command_id=command.id,
            patient_id=command.patient_id,
            event_type=EventType.DOSE_TAKEN,
            scheduled_for=scheduled_for,
            grace_period_end=grace_period_end(command, scheduled_for, calendar),
            is_on_time=score.is_on_time,
            minutes_late=score.minutes_late,
            event_data=EventData(
                adherence_tracking=score.to_tracking(),
                actual_dosage=actual_dosage,
                with_food=with_food,
                symptoms=list(symptoms or []),
                notes=notes,
                undo_available_until=undo_until,
            ),
            context=EventContext(
                medication_name=command.medication.name,
                actor=actor,
                time_slot=command.preferences.time_slot,
            ),
        ))

        self._notify(NotificationRequest(
            patient_id=command.patient_id,
            notification_type=NotificationType.DOSE_TAKEN,
            data={"medication": command.medication.name, "timing_category": score.timing_category.value},
            urgency=score.urgency_level,
        ))
        return TakeResult(event=event, score=score, undo_available_until=undo_until)

    async def mark_missed(
        self,
        command_id: str,
        scheduled_for: datetime,
        actor: str,
        reason: Optional[str] = None,
        trigger_source: TriggerSource = TriggerSource.USER_ACTION,
    ) -> MedicationEvent:
        command = await self._get_command(command_id)
        if trigger_source == TriggerSource.USER_ACTION:
            self._require_active(command)
        scheduled_for = ensure_utc(scheduled_for)
        calendar = await self.calendar_for(command.patient_id)

        event = await self.create_event(EventDraft(
            command_id=command.id,
            patient_id=command.patient_id,
            event_type=EventType.DOSE_MISSED,
            scheduled_for=scheduled_for,
            grace_period_end=grace_period_end(command, scheduled_for, calendar),
            is_on_time=False,
            event_data=EventData(missed_reason=reason),
            context=EventContext(
                medication_name=command.medication.name,
                actor=actor,
                trigger_source=trigger_source,
                time_slot=command.preferences.time_slot,
            ),
        ))
        self._notify(NotificationRequest(
            patient_id=command.patient_id,
            notification_type=NotificationType.MISSED_DOSE_ALERT,
            data={
                "medication": command.medication.name,
                "scheduled_time": scheduled_for.astimezone(calendar.zone).strftime("%H:%M"),
            },
            urgency="high" if command.grace_period.medication_type == MedicationType.CRITICAL else "medium",
        ))
        return event

    async def mark_skipped(
        self,
        command_id: str,
        scheduled_for: datetime,
        actor: str,
        reason: str,
    ) -> MedicationEvent:
        if not reason or not reason.strip():
            raise ValidationError("reason", "a reason is required to skip a dose")
        command = await self._get_command(command_id)
        self._require_active(command)
        scheduled_for = ensure_utc(scheduled_for)

        return await self.create_event(EventDraft(
            command_id=command.id,
            patient_id=command.patient_id,
            event_type=EventType.DOSE_SKIPPED,
            scheduled_for=scheduled_for,
            event_data=EventData(skip_reason=reason.strip()),
            context=EventContext(
                medication_name=command.medication.name,
                actor=actor,
                time_slot=command.preferences.time_slot,
            ),
        ))

    async def snooze(
        self,
        command_id: str,
        scheduled_for: datetime,
        actor: str,
        minutes: int,
    ) -> MedicationEvent:
        if minutes < 1 or minutes > scheduling_config.MAX_SNOOZE_MINUTES:
            raise ValidationError(
                "minutes", f"must be between 1 and {scheduling_config.MAX_SNOOZE_MINUTES}"
            )
        command = await self._get_command(command_id)
        self._require_active(command)

        return await self.create_event(EventDraft(
            command_id=command.id,
            patient_id=command.patient_id,
            event_type=EventType.DOSE_SNOOZED,
            scheduled_for=ensure_utc(scheduled_for),
            event_data=EventData(snooze_minutes=minutes),
            context=EventContext(
                medication_name=command.medication.name,
                actor=actor,
                time_slot=command.preferences.time_slot,
            ),
        ))

    # ==================== SYSTEM JOBS ====================

    async def generate_daily_dose_events(
        self,
        patient_id: str,
        day: Optional[date] = None,
    ) -> List[MedicationEvent]:
        """Append dose_scheduled events for every active command due on a local day; repeatable"""
        calendar = await self.calendar_for(patient_id)
        now = self.clock.now()
        day = day or local_date(now, calendar.zone)
        start, end = local_day_bounds(day, calendar.zone)

        existing = await self.repository.query_events(EventQuery(
            patient_id=patient_id,
            event_types=[EventType.DOSE_SCHEDULED],
            scheduled_from=start,
            scheduled_to=end,
        ))
        seen = {(e.command_id, ensure_utc(e.timing.scheduled_for)) for e in existing}

        commands = await self.repository.query_commands(patient_id, [CommandStatus.ACTIVE])
        created = []
        for command in commands:
            if command.is_prn or not is_due_on(command, day):
                continue
            for hhmm in command.schedule.times:
                scheduled_for = combine_local(day, hhmm, calendar.zone)
                if (command.id, scheduled_for) in seen:
                    continue
                event = EventDraft(
                    command_id=command.id,
                    patient_id=patient_id,
                    event_type=EventType.DOSE_SCHEDULED,
                    scheduled_for=scheduled_for,
                    grace_period_end=grace_period_end(command, scheduled_for, calendar),
                    context=EventContext(
                        medication_name=command.medication.name,
                        actor=SCHEDULER_ACTOR,
                        trigger_source=TriggerSource.SYSTEM_DETECTED,
                        time_slot=command.preferences.time_slot,
                    ),
                ).to_event(str(uuid.uuid4()), now)
                await self.repository.append_event(event)
                seen.add((command.id, scheduled_for))
                created.append(event)

        logger.info(f"Generated {len(created)} scheduled doses for patient {patient_id} on {day}")
        return created

    async def detect_missed_doses(
        self,
        patient_id: str,
        days: Optional[Sequence[date]] = None,
    ) -> List[MedicationEvent]:
        """
        Record dose_missed for every dose past its grace period with no
        resolving event. Defaults to the patient's local today and yesterday.
        """
        calendar = await self.calendar_for(patient_id)
        now = self.clock.now()
        today = local_date(now, calendar.zone)
        days = sorted(days) if days else [today - timedelta(days=1), today]

        commands = {
            c.id: c for c in await self.repository.query_commands(patient_id, [CommandStatus.ACTIVE])
            if not c.is_prn
        }
        range_start = local_day_bounds(days[0], calendar.zone)[0]
        range_end = local_day_bounds(days[-1], calendar.zone)[1]
        events = await self.repository.query_events(EventQuery(
            patient_id=patient_id,
            scheduled_from=range_start,
            scheduled_to=range_end,
        ))
        states = derive_dose_states(events)

        due = set()
        for command in commands.values():
            for day in days:
                if is_due_on(command, day):
                    for hhmm in command.schedule.times:
                        due.add((command.id, combine_local(day, hhmm, calendar.zone)))
        for key, state in states.items():
            if key[0] in commands and state.scheduled_event_id:
                due.add(key)

        created = []
        for command_id, scheduled_for in sorted(due, key=lambda k: (k[1], k[0])):
            state = states.get((command_id, scheduled_for))
            if state is not None and state.is_resolved:
                continue
            command = commands[command_id]
            if scheduled_for < ensure_utc(command.metadata.created_at):
                continue
            if grace_period_end(command, scheduled_for, calendar) >= now:
                continue
            try:
                created.append(await self.mark_missed(
                    command_id,
                    scheduled_for,
                    actor=settings.MISSED_DOSE_ACTOR,
                    reason="Not taken within grace period",
                    trigger_source=TriggerSource.SYSTEM_DETECTED,
                ))
            except DuplicateEvent:
                continue

        if created:
            logger.info(f"Detected {len(created)} missed doses for patient {patient_id}")
        return created
