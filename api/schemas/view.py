"""
View Schemas
Pydantic models for bucketed views, adherence, summaries and time preferences
"""

from typing import Optional, List, Dict
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from domain.enums import Bucket, TimeSlot
from domain.preferences import PatientTimePreferences, TimeBucketWindow
from domain.summary import DailySummary


# ==================== TODAY VIEW ====================

class BucketItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    command_id: str
    medication_name: str
    dosage: str
    bucket: Bucket
    scheduled_for: datetime
    scheduled_time: str
    doses_today: int
    doses_completed: int
    time_slot: Optional[TimeSlot] = None
    minutes_until_due: Optional[int] = None
    minutes_overdue: Optional[int] = None
    snoozed_until: Optional[datetime] = None
    status_label: Optional[str] = None
    is_on_time: Optional[bool] = None
    minutes_late: Optional[int] = None
    completed_at: Optional[datetime] = None


class BucketSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_commands: int
    total_doses_today: int
    completed: int
    overdue: int


class TodayBucketsResponse(BaseModel):
    """Today view grouped by bucket"""
    model_config = ConfigDict(from_attributes=True)

    for_date: date
    timezone: str
    now: List[BucketItemResponse]
    due_soon: List[BucketItemResponse]
    morning: List[BucketItemResponse]
    lunch: List[BucketItemResponse]
    evening: List[BucketItemResponse]
    before_bed: List[BucketItemResponse]
    overdue: List[BucketItemResponse]
    completed: List[BucketItemResponse]
    summary: BucketSummaryResponse


# ==================== TIME PREFERENCES ====================

class TimePreferencesUpdate(BaseModel):
    """Schema for replacing some or all bucket windows"""
    morning: Optional[TimeBucketWindow] = None
    lunch: Optional[TimeBucketWindow] = None
    evening: Optional[TimeBucketWindow] = None
    before_bed: Optional[TimeBucketWindow] = None
    timezone: Optional[str] = None
    holidays: Optional[List[date]] = None
    expected_version: Optional[int] = Field(None, ge=1)


class TimePreferencesResponse(BaseModel):
    preferences: PatientTimePreferences
    warnings: List[str] = Field(default_factory=list)


# ==================== ADHERENCE ====================

class MedicationAdherenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    command_id: str
    medication_name: str
    scheduled: int
    taken: int
    missed: int
    skipped: int
    adherence_rate: float
    on_time_rate: float


class AdherenceMetricsResponse(BaseModel):
    """Adherence over a date range; rates are fractions between 0 and 1"""
    model_config = ConfigDict(from_attributes=True)

    patient_id: str
    from_date: date
    to_date: date
    total_scheduled: int
    total_taken: int
    total_missed: int
    total_skipped: int
    adherence_rate: float
    on_time_rate: float
    average_delay_minutes: float
    by_medication: Dict[str, MedicationAdherenceResponse]


class StreakResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current_streak: int
    longest_streak: int
    last_resolved_day: Optional[date] = None


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    command_id: str
    medication_name: str
    threshold: int
    current_streak: int


# ==================== DAILY RESET ====================

class DailyResetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_id: str
    summary_date: date
    timezone: str
    dry_run: bool
    already_archived: bool
    archived_event_count: int
    summary: DailySummary
