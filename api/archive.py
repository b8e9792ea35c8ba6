"""
Archive API Router
Daily reset and stored daily summaries
"""

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from api.deps import get_container
from api.schemas.view import DailyResetResponse
from domain.summary import DailySummary
from exceptions import NotFound
from services.container import ServiceContainer


router = APIRouter(prefix="/archive", tags=["archive"])


@router.post("/patient/{patient_id}/daily-reset", response_model=DailyResetResponse)
async def run_daily_reset(
    patient_id: str,
    summary_date: Optional[date] = Query(None, description="Local day to archive; defaults to yesterday"),
    timezone: Optional[str] = Query(None, description="IANA timezone; defaults to the patient's"),
    dry_run: bool = False,
    container: ServiceContainer = Depends(get_container)
):
    """
    Archive a patient-local day and store its summary

    Repeating the reset for an archived day returns the stored summary.
    """
    result = await container.daily_reset.run_daily_reset(
        patient_id, summary_date=summary_date, timezone=timezone, dry_run=dry_run
    )
    return DailyResetResponse.model_validate(result)


@router.get("/patient/{patient_id}/summaries", response_model=List[DailySummary])
async def list_summaries(
    patient_id: str,
    from_date: date = Query(...),
    to_date: date = Query(...),
    container: ServiceContainer = Depends(get_container)
):
    return await container.daily_reset.list_summaries(patient_id, from_date, to_date)


@router.get("/patient/{patient_id}/summaries/{summary_date}", response_model=DailySummary)
async def get_summary(
    patient_id: str,
    summary_date: date,
    container: ServiceContainer = Depends(get_container)
):
    summary = await container.daily_reset.get_summary(patient_id, summary_date)
    if summary is None:
        raise NotFound("DailySummary", f"{patient_id}/{summary_date}")
    return summary
