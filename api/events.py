"""
Events API Router
Endpoints for recording, undoing and correcting dose events
"""

from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from api.deps import get_container
from api.schemas.event import (
    AdherenceImpactResponse,
    CorrectionRequest,
    CorrectionResponse,
    DoseMissed,
    DoseSkipped,
    DoseSnoozed,
    DoseTaken,
    TakeResponse,
    TakeScoreResponse,
    UndoRequest,
    UndoResponse,
)
from domain.enums import EventType
from domain.event import MedicationEvent
from services.container import ServiceContainer


router = APIRouter(prefix="/events", tags=["events"])


def _impact_response(impact) -> AdherenceImpactResponse:
    return AdherenceImpactResponse(
        command_id=impact.command_id,
        previous_score=impact.previous_score,
        new_score=impact.new_score,
        delta=impact.delta,
    )


# ==================== DOSE ACTIONS ====================

@router.post("/taken", response_model=TakeResponse, status_code=status.HTTP_201_CREATED)
async def mark_taken(dose: DoseTaken, container: ServiceContainer = Depends(get_container)):
    """
    Record a taken dose

    The take is scored against its scheduled time. A second take of the same
    dose within the duplicate window is rejected with 409 and the id of the
    first event. The take can be undone for a short window after recording.
    """
    result = await container.events.mark_taken(
        dose.command_id,
        actor=dose.actor,
        scheduled_for=dose.scheduled_for,
        taken_at=dose.taken_at,
        actual_dosage=dose.actual_dosage,
        with_food=dose.with_food,
        symptoms=dose.symptoms,
        notes=dose.notes,
    )
    return TakeResponse(
        event=result.event,
        score=TakeScoreResponse(**vars(result.score)),
        undo_available_until=result.undo_available_until,
    )


@router.post("/missed", response_model=MedicationEvent, status_code=status.HTTP_201_CREATED)
async def mark_missed(dose: DoseMissed, container: ServiceContainer = Depends(get_container)):
    return await container.events.mark_missed(
        dose.command_id, dose.scheduled_for, actor=dose.actor, reason=dose.reason
    )


@router.post("/skipped", response_model=MedicationEvent, status_code=status.HTTP_201_CREATED)
async def mark_skipped(dose: DoseSkipped, container: ServiceContainer = Depends(get_container)):
    return await container.events.mark_skipped(
        dose.command_id, dose.scheduled_for, actor=dose.actor, reason=dose.reason
    )


@router.post("/snoozed", response_model=MedicationEvent, status_code=status.HTTP_201_CREATED)
async def snooze(dose: DoseSnoozed, container: ServiceContainer = Depends(get_container)):
    return await container.events.snooze(
        dose.command_id, dose.scheduled_for, actor=dose.actor, minutes=dose.minutes
    )


# ==================== UNDO / CORRECTION ====================

@router.post("/{event_id}/undo", response_model=UndoResponse, status_code=status.HTTP_201_CREATED)
async def undo_event(
    event_id: str,
    request: UndoRequest,
    container: ServiceContainer = Depends(get_container)
):
    """Undo a take within the undo window; expired windows return 410"""
    result = await container.undo.undo(event_id, actor=request.actor, reason=request.reason)
    return UndoResponse(
        event=result.event,
        original_event_id=result.original_event_id,
        adherence_impact=_impact_response(result.adherence_impact),
    )


@router.post("/{event_id}/correct", response_model=CorrectionResponse, status_code=status.HTTP_201_CREATED)
async def correct_event(
    event_id: str,
    request: CorrectionRequest,
    container: ServiceContainer = Depends(get_container)
):
    """Correct an earlier dose outcome"""
    result = await container.undo.correct(
        event_id,
        request.corrected_action,
        reason=request.reason,
        actor=request.actor,
        corrected_data=request.corrected_data,
    )
    return CorrectionResponse(
        event=result.event,
        original_event_id=result.original_event_id,
        corrected_action=result.corrected_action,
        adherence_impact=_impact_response(result.adherence_impact),
    )


# ==================== QUERIES ====================

@router.get("/patient/{patient_id}", response_model=List[MedicationEvent])
async def list_patient_events(
    patient_id: str,
    scheduled_from: Optional[datetime] = Query(None, description="Inclusive, UTC"),
    scheduled_to: Optional[datetime] = Query(None, description="Exclusive, UTC"),
    command_id: Optional[str] = None,
    event_type: Optional[List[EventType]] = Query(None),
    container: ServiceContainer = Depends(get_container)
):
    return await container.events.list_events(
        patient_id,
        scheduled_from=scheduled_from,
        scheduled_to=scheduled_to,
        command_id=command_id,
        event_types=event_type,
    )


@router.get("/{event_id}", response_model=MedicationEvent)
async def get_event(event_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.events.get_event(event_id)


# ==================== SYSTEM JOBS ====================

@router.post("/patient/{patient_id}/generate", response_model=List[MedicationEvent])
async def generate_daily_doses(
    patient_id: str,
    day: Optional[date] = Query(None, description="Local day; defaults to today"),
    container: ServiceContainer = Depends(get_container)
):
    """Create dose_scheduled events for a local day; safe to repeat"""
    return await container.events.generate_daily_dose_events(patient_id, day)


@router.post("/patient/{patient_id}/detect-missed", response_model=List[MedicationEvent])
async def detect_missed_doses(
    patient_id: str,
    day: Optional[List[date]] = Query(None, description="Local days; defaults to yesterday and today"),
    container: ServiceContainer = Depends(get_container)
):
    """Record dose_missed for doses past their grace period with no outcome"""
    return await container.events.detect_missed_doses(patient_id, day)
