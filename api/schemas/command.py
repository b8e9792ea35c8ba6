"""
Command Schemas
Pydantic models for medication command API requests and responses
"""

from typing import Optional, List, Dict
from datetime import date
from pydantic import BaseModel, Field

from domain.command import (
    CommandPreferences,
    GracePeriodSettings,
    MedicationCommand,
    MedicationInfo,
    ReminderSettings,
    ScheduleConfig,
)
from domain.enums import CommandStatus, Frequency, TimingType
from domain.event import MedicationEvent


# ==================== REQUEST SCHEMAS ====================

class CommandCreate(BaseModel):
    """Schema for creating a medication command"""
    patient_id: str = Field(..., min_length=1)
    medication: MedicationInfo
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    times: Optional[List[str]] = Field(None, description="HH:MM times; computed from time buckets when omitted")
    time_overrides: Optional[Dict[str, str]] = Field(None, description="Bucket name -> HH:MM")
    dosage_amount: Optional[str] = None
    timing_type: TimingType = TimingType.ABSOLUTE
    reminders: Optional[ReminderSettings] = None
    grace_period: Optional[GracePeriodSettings] = None
    preferences: Optional[CommandPreferences] = None
    actor: str = Field(..., min_length=1)


class CommandUpdate(BaseModel):
    """Schema for updating a medication command"""
    actor: str = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=1)
    medication: Optional[MedicationInfo] = None
    schedule: Optional[ScheduleConfig] = None
    reminders: Optional[ReminderSettings] = None
    grace_period: Optional[GracePeriodSettings] = None
    preferences: Optional[CommandPreferences] = None


class StatusChangeRequest(BaseModel):
    """Schema for a command status transition"""
    new_status: CommandStatus
    reason: str = Field(..., min_length=1, max_length=500)
    actor: str = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=1)


# ==================== RESPONSE SCHEMAS ====================

class StatusChangeResponse(BaseModel):
    command: MedicationCommand
    event: MedicationEvent


class DeleteResponse(BaseModel):
    command_id: str
    hard_delete: bool
    command_deleted: bool
    events_deleted: int = 0
    status: Optional[CommandStatus] = None


class SeparationConflictResponse(BaseModel):
    medication_name: str
    other_medication_name: str
    time: str
    other_time: str
    gap_minutes: int
    required_minutes: int
