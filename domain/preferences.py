"""
Patient Time Preferences
Per-patient time-of-day buckets used to place doses
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from config import scheduling_config, settings
from domain.command import normalize_hhmm


class TimeBucketWindow(BaseModel):
    """A named window of the day; may wrap past midnight"""
    start: str
    end: str
    default_time: str
    label: Optional[str] = None

    @field_validator("start", "end", "default_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        return normalize_hhmm(v)


def _default_window(bucket: str) -> TimeBucketWindow:
    start, end, default_time, label = scheduling_config.DEFAULT_TIME_BUCKETS[bucket]
    return TimeBucketWindow(start=start, end=end, default_time=default_time, label=label)


class PatientTimePreferences(BaseModel):
    patient_id: str
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)
    morning: TimeBucketWindow = Field(default_factory=lambda: _default_window("morning"))
    lunch: TimeBucketWindow = Field(default_factory=lambda: _default_window("lunch"))
    evening: TimeBucketWindow = Field(default_factory=lambda: _default_window("evening"))
    before_bed: TimeBucketWindow = Field(default_factory=lambda: _default_window("before_bed"))
    holidays: List[date] = Field(default_factory=list)
    version: int = Field(1, ge=1)

    def buckets(self) -> Dict[str, TimeBucketWindow]:
        return {
            "morning": self.morning,
            "lunch": self.lunch,
            "evening": self.evening,
            "before_bed": self.before_bed,
        }
