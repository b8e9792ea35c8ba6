"""
Daily Summary Model
Create-once roll-up of a patient's local day
"""

from datetime import date, datetime
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class MedicationBreakdown(BaseModel):
    medication_name: str
    scheduled: int = 0
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    snoozed: int = 0
    adherence_rate: float = 0.0


class DailySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    summary_date: date
    timezone: str
    total_scheduled: int = 0
    total_taken: int = 0
    total_missed: int = 0
    total_skipped: int = 0
    total_snoozed: int = 0
    adherence_rate: float = 0.0
    on_time_rate: float = 0.0
    average_delay_minutes: float = 0.0
    by_medication: Dict[str, MedicationBreakdown] = Field(default_factory=dict)
    archived_event_ids: List[str] = Field(default_factory=list)
    created_at: datetime
