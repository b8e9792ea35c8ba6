"""
Patient Views API Router
Today's bucketed view and time-of-day preferences
"""

from fastapi import APIRouter, Depends

from api.deps import get_container
from api.schemas.view import (
    TimePreferencesResponse,
    TimePreferencesUpdate,
    TodayBucketsResponse,
)
from services.container import ServiceContainer


router = APIRouter(prefix="/patients", tags=["views"])


@router.get("/{patient_id}/today", response_model=TodayBucketsResponse)
async def get_today(patient_id: str, container: ServiceContainer = Depends(get_container)):
    """
    Today's medications grouped into buckets

    Each active scheduled command appears in exactly one bucket: now, due soon,
    overdue, completed, or its time-of-day slot.
    """
    buckets = await container.time_buckets.get_today_buckets(patient_id)
    return TodayBucketsResponse.model_validate(buckets)


@router.get("/{patient_id}/time-preferences", response_model=TimePreferencesResponse)
async def get_time_preferences(patient_id: str, container: ServiceContainer = Depends(get_container)):
    preferences = await container.time_buckets.get_preferences(patient_id)
    return TimePreferencesResponse(preferences=preferences)


@router.put("/{patient_id}/time-preferences", response_model=TimePreferencesResponse)
async def update_time_preferences(
    patient_id: str,
    update_data: TimePreferencesUpdate,
    container: ServiceContainer = Depends(get_container)
):
    """Replace bucket windows; overlapping windows are accepted with warnings"""
    result = await container.time_buckets.update_preferences(
        patient_id,
        morning=update_data.morning,
        lunch=update_data.lunch,
        evening=update_data.evening,
        before_bed=update_data.before_bed,
        timezone=update_data.timezone,
        holidays=update_data.holidays,
        expected_version=update_data.expected_version,
    )
    return TimePreferencesResponse(preferences=result.preferences, warnings=result.warnings)
