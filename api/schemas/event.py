"""
Event Schemas
Pydantic models for dose event API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field

from config import scheduling_config
from domain.enums import CorrectedAction, TimingCategory
from domain.event import CorrectedData, MedicationEvent


# ==================== REQUEST SCHEMAS ====================

class DoseTaken(BaseModel):
    """Schema for recording a taken dose"""
    command_id: str
    actor: str = Field(..., min_length=1)
    scheduled_for: Optional[datetime] = Field(None, description="Required unless the command is as-needed")
    taken_at: Optional[datetime] = None
    actual_dosage: Optional[str] = None
    with_food: Optional[bool] = None
    symptoms: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=1000)


class DoseMissed(BaseModel):
    """Schema for recording a missed dose"""
    command_id: str
    scheduled_for: datetime
    actor: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class DoseSkipped(BaseModel):
    """Schema for recording a skipped dose"""
    command_id: str
    scheduled_for: datetime
    actor: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=500)


class DoseSnoozed(BaseModel):
    """Schema for snoozing a dose"""
    command_id: str
    scheduled_for: datetime
    actor: str = Field(..., min_length=1)
    minutes: int = Field(..., ge=1, le=scheduling_config.MAX_SNOOZE_MINUTES)


class UndoRequest(BaseModel):
    actor: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class CorrectionRequest(BaseModel):
    corrected_action: CorrectedAction
    reason: str = Field(..., min_length=1, max_length=500)
    actor: str = Field(..., min_length=1)
    corrected_data: CorrectedData = Field(default_factory=CorrectedData)


# ==================== RESPONSE SCHEMAS ====================

class TakeScoreResponse(BaseModel):
    minutes_from_scheduled: int
    timing_category: TimingCategory
    is_on_time: bool
    minutes_late: int
    dose_accuracy: int
    timing_accuracy: int
    circumstance_compliance: int
    overall_score: float
    urgency_level: str


class TakeResponse(BaseModel):
    event: MedicationEvent
    score: TakeScoreResponse
    undo_available_until: datetime


class AdherenceImpactResponse(BaseModel):
    command_id: str
    previous_score: float
    new_score: float
    delta: float


class UndoResponse(BaseModel):
    event: MedicationEvent
    original_event_id: str
    adherence_impact: AdherenceImpactResponse


class CorrectionResponse(UndoResponse):
    corrected_action: CorrectedAction
