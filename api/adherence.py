"""
Adherence API Router
Endpoints for adherence metrics, streaks and milestones
"""

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from api.deps import get_container
from api.schemas.view import AdherenceMetricsResponse, MilestoneResponse, StreakResponse
from services.container import ServiceContainer


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/patient/{patient_id}", response_model=AdherenceMetricsResponse)
async def get_adherence(
    patient_id: str,
    from_date: date = Query(..., description="First local day, inclusive"),
    to_date: Optional[date] = Query(None, description="Last local day, inclusive; defaults to from_date"),
    command_id: Optional[str] = None,
    container: ServiceContainer = Depends(get_container)
):
    """
    Adherence metrics over a range of patient-local days

    As-needed medications are excluded. Rates are fractions between 0 and 1
    and are 0 when nothing was scheduled.
    """
    to_date = to_date or from_date
    metrics = await container.adherence.calculate_adherence_metrics(
        patient_id, from_date, to_date, command_id=command_id
    )
    return AdherenceMetricsResponse(
        patient_id=patient_id,
        from_date=from_date,
        to_date=to_date,
        **metrics.to_dict(),
    )


@router.get("/patient/{patient_id}/streak", response_model=StreakResponse)
async def get_streak(
    patient_id: str,
    command_id: Optional[str] = None,
    container: ServiceContainer = Depends(get_container)
):
    """Consecutive local days with every scheduled dose taken"""
    streak = await container.adherence.get_streak(patient_id, command_id)
    return StreakResponse.model_validate(streak)


@router.post("/patient/{patient_id}/milestones/check", response_model=List[MilestoneResponse])
async def check_milestones(patient_id: str, container: ServiceContainer = Depends(get_container)):
    """Report streak milestones reached since the last check"""
    milestones = await container.adherence.check_milestones(patient_id)
    return [MilestoneResponse.model_validate(m) for m in milestones]
