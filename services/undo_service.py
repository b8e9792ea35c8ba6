"""
Undo Service
Short-window undo of takes and unlimited corrections of recorded doses
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from config import scheduling_config
from domain.enums import CorrectedAction, EventType, RESOLVING_EVENT_TYPES
from domain.event import CorrectedData, EventContext, EventData, EventDraft, MedicationEvent
from exceptions import DuplicateEvent, UndoWindowExpired, ValidationError, validation_error_from_pydantic
from services.adherence_service import AdherenceImpact, AdherenceService
from services.clock import Clock
from services.event_service import EventService
from services.repository import EventQuery, MedicationRepository
from tools.timezone_utils import ensure_utc


logger = logging.getLogger(__name__)


CORRECTABLE_EVENT_TYPES = RESOLVING_EVENT_TYPES | {EventType.DOSE_SCHEDULED, EventType.DOSE_CORRECTED}


@dataclass
class UndoResult:
    event: MedicationEvent
    original_event_id: str
    adherence_impact: AdherenceImpact


@dataclass
class CorrectionResult:
    event: MedicationEvent
    original_event_id: str
    corrected_action: CorrectedAction
    adherence_impact: AdherenceImpact


def parse_corrected_data(data: Union[CorrectedData, Mapping[str, Any], None]) -> CorrectedData:
    """Validate correction details before they reach the event log"""
    if isinstance(data, CorrectedData):
        return data
    try:
        return CorrectedData.model_validate(dict(data or {}))
    except PydanticValidationError as e:
        error = validation_error_from_pydantic(e)
        raise ValidationError(f"corrected_data.{error.field}", error.reason) from e


class UndoService:
    """
    Service for undoing and correcting dose events
    """

    def __init__(
        self,
        repository: MedicationRepository,
        clock: Clock,
        event_service: EventService,
        adherence_service: AdherenceService,
    ):
        self.repository = repository
        self.clock = clock
        self.event_service = event_service
        self.adherence_service = adherence_service

    def undo_deadline(self, event: MedicationEvent) -> datetime:
        return ensure_utc(event.timing.event_timestamp) + timedelta(seconds=scheduling_config.UNDO_WINDOW_SECONDS)

    async def _existing_undo(self, original: MedicationEvent) -> Optional[MedicationEvent]:
        undos = await self.repository.query_events(EventQuery(
            command_id=original.command_id,
            event_types=[EventType.DOSE_TAKEN_UNDONE],
        ))
        return next((e for e in undos if e.event_data.original_event_id == original.id), None)

    async def undo(self, original_event_id: str, actor: str, reason: Optional[str] = None) -> UndoResult:
        """
        Undo a take within the undo window

        Args:
            original_event_id: The dose_taken event to undo
            actor: Who is undoing
            reason: Optional free-text reason

        Returns:
            UndoResult with the dose_taken_undone event and the adherence impact

        Raises:
            UndoWindowExpired: more than the undo window has passed since the take
            DuplicateEvent: the take was already undone
        """
        original = await self.event_service.get_event(original_event_id)
        if original.event_type != EventType.DOSE_TAKEN:
            raise ValidationError("original_event_id", "only dose_taken events can be undone")

        existing = await self._existing_undo(original)
        if existing is not None:
            raise DuplicateEvent(existing.id, f"Event {original.id} was already undone")

        now = self.clock.now()
        deadline = self.undo_deadline(original)
        if now > deadline:
            logger.warning(f"Undo of {original.id} rejected; window closed at {deadline.isoformat()}")
            raise UndoWindowExpired(original.id, deadline)

        event = await self.event_service.create_event(EventDraft(
            command_id=original.command_id,
            patient_id=original.patient_id,
            event_type=EventType.DOSE_TAKEN_UNDONE,
            scheduled_for=original.timing.scheduled_for,
            event_data=EventData(original_event_id=original.id, undo_reason=reason),
            context=EventContext(
                medication_name=original.context.medication_name,
                actor=actor,
                time_slot=original.context.time_slot,
            ),
        ))
        impact = await self.adherence_service.estimate_impact(original, event)
        logger.info(f"Undid take {original.id} with {event.id}")
        return UndoResult(event=event, original_event_id=original.id, adherence_impact=impact)

    async def correct(
        self,
        original_event_id: str,
        corrected_action,
        reason: str,
        actor: str,
        corrected_data: Union[CorrectedData, Mapping[str, Any], None] = None,
    ) -> CorrectionResult:
        """Record a correction of an earlier dose outcome; there is no time limit"""
        if not reason or not reason.strip():
            raise ValidationError("reason", "a reason is required for corrections")
        try:
            action = CorrectedAction(corrected_action)
        except ValueError as e:
            raise ValidationError("corrected_action", f"unknown action '{corrected_action}'") from e
        details = parse_corrected_data(corrected_data)

        original =await self.event_service.get_event(original_event_id)
        if original.event_type not in CORRECTABLE_EVENT_TYPES:
            raise ValidationError("original_event_id", f"{original.event_type.value} events cannot be corrected")

        event = await self.event_service.create_event(EventDraft(
            command_id=original.command_id,
            patient_id=original.patient_id,
            event_type=EventType.DOSE_CORRECTED,
            scheduled_for=original.timing.scheduled_for,
            event_data=EventData(
                original_event_id=original.id,
                corrected_action=action,
                correction_reason=reason.strip(),
                corrected_data=details,
            ),
            context=EventContext(
                medication_name=original.context.medication_name,
                actor=actor,
                time_slot=original.context.time_slot,
            ),
        ))
        impact = await self.adherence_service.estimate_impact(original, event)
        logger.info(f"Corrected {original.id} to {action.value} with {event.id}")
        return CorrectionResult(
            event=event,
            original_event_id=original.id,
            corrected_action=action,
            adherence_impact=impact,
        )
