"""
Medication Event Models
Entries of the append-only medication event log
"""

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.enums import (
    CommandStatus,
    CorrectedAction,
    EventType,
    RESOLVING_EVENT_TYPES,
    TimeSlot,
    TimingCategory,
    TriggerSource,
)


class AdherenceTracking(BaseModel):
    """Scores recorded with every take"""
    dose_accuracy: int = Field(..., ge=0, le=100)
    timing_accuracy: int = Field(..., ge=0, le=100)
    circumstance_compliance: int = Field(..., ge=0, le=100)
    overall_score: float = Field(..., ge=0, le=100)
    timing_category: TimingCategory
    minutes_from_scheduled: int
    urgency_level: str = "low"


class CorrectedData(BaseModel):
    """Replacement take details carried by a correction"""
    model_config = ConfigDict(extra="forbid")

    taken_at: Optional[datetime] = None
    is_on_time: Optional[bool] = None
    minutes_late: Optional[int] = Field(None, ge=0)
    actual_dosage: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("taken_at")
    @classmethod
    def taken_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive times are UTC
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class EventData(BaseModel):
    """Type-specific payload; only the fields relevant to the event type are set"""
    # takes
    adherence_tracking: Optional[AdherenceTracking] = None
    actual_dosage: Optional[str] = None
    with_food: Optional[bool] = None
    symptoms: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    undo_available_until: Optional[datetime] = None

    # misses, skips, snoozes
    missed_reason: Optional[str] = None
    skip_reason: Optional[str] = None
    snooze_minutes: Optional[int] = None

    # undo / correction
    original_event_id: Optional[str] = None
    undo_reason: Optional[str] = None
    corrected_action: Optional[CorrectedAction] = None
    correction_reason: Optional[str] = None
    corrected_data: CorrectedData = Field(default_factory=CorrectedData)

    # status changes
    old_status: Optional[CommandStatus] = None
    new_status: Optional[CommandStatus] = None
    status_reason: Optional[str] = None


class EventTiming(BaseModel):
    event_timestamp: datetime
    scheduled_for: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    is_on_time: Optional[bool] = None
    minutes_late: Optional[int] = None


class EventContext(BaseModel):
    medication_name: str
    trigger_source: TriggerSource = TriggerSource.USER_ACTION
    actor: str
    time_slot: Optional[TimeSlot] = None


class ArchiveStatus(BaseModel):
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    belongs_to_date: Optional[date] = None
    daily_summary_id: Optional[str] = None


class MedicationEvent(BaseModel):
    """Immutable event document as stored"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    command_id: str
    patient_id: str
    event_type: EventType
    timing: EventTiming
    event_data: EventData = Field(default_factory=EventData)
    context: EventContext
    archive_status: ArchiveStatus = Field(default_factory=ArchiveStatus)

    @property
    def is_resolving(self) -> bool:
        return self.event_type in RESOLVING_EVENT_TYPES

    @property
    def scheduled_for(self) -> Optional[datetime]:
        return self.timing.scheduled_for

    @property
    def event_timestamp(self) -> datetime:
        return self.timing.event_timestamp


class EventDraft(BaseModel):
    """Event content supplied by callers; id and timestamp are assigned on append"""
    command_id: str
    patient_id: str
    event_type: EventType
    scheduled_for: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    is_on_time: Optional[bool] = None
    minutes_late: Optional[int] = None
    event_data: EventData = Field(default_factory=EventData)
    context: EventContext

    def to_event(self, event_id: str, event_timestamp: datetime) -> MedicationEvent:
        return MedicationEvent(
            id=event_id,
            command_id=self.command_id,
            patient_id=self.patient_id,
            event_type=self.event_type,
            timing=EventTiming(
                event_timestamp=event_timestamp,
                scheduled_for=self.scheduled_for,
                grace_period_end=self.grace_period_end,
                is_on_time=self.is_on_time,
                minutes_late=self.minutes_late,
            ),
            event_data=self.event_data,
            context=self.context,
        )
