"""
Medication Command Models
A medication command is a patient's standing order for one medication
"""

import hashlib
import json
import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.enums import CommandStatus, Frequency, MedicationType, TimeSlot, TimingType


HHMM_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def normalize_hhmm(value: str) -> str:
    """Validate an HH:MM string and zero-pad the hour"""
    if not isinstance(value, str) or not HHMM_PATTERN.match(value):
        raise ValueError(f"'{value}' is not a valid HH:MM time")
    hour, minute = value.split(":")
    return f"{int(hour):02d}:{minute}"


class MedicationInfo(BaseModel):
    """What is being taken"""
    name: str = Field(..., min_length=1, max_length=200)
    generic_name: Optional[str] = None
    brand_name: Optional[str] = None
    dosage: str = Field(..., min_length=1, max_length=100)
    instructions: Optional[str] = None
    prescribed_by: Optional[str] = None
    should_take_with_food: bool = False


class ScheduleConfig(BaseModel):
    """When it is taken"""
    frequency: Frequency
    times: List[str] = Field(default_factory=list)
    start_date: date
    end_date: Optional[date] = None
    is_indefinite: bool = True
    dosage_amount: Optional[str] = None
    timing_type: TimingType = TimingType.ABSOLUTE

    @field_validator("times")
    @classmethod
    def validate_times(cls, v: List[str]) -> List[str]:
        return [normalize_hhmm(t) for t in v]

    @model_validator(mode="after")
    def check_times_and_dates(self) -> "ScheduleConfig":
        if self.frequency != Frequency.AS_NEEDED and not self.times:
            raise ValueError("times must not be empty unless frequency is as_needed")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ReminderSettings(BaseModel):
    enabled: bool = True
    minutes_before: List[int] = Field(default_factory=lambda: [15])
    notification_methods: List[str] = Field(default_factory=lambda: ["push"])
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def validate_quiet_hours(cls, v: Optional[str]) -> Optional[str]:
        return normalize_hhmm(v) if v is not None else None


class GracePeriodSettings(BaseModel):
    """Lateness tolerance; default_minutes overrides the per-type base"""
    default_minutes: Optional[int] = Field(None, ge=0)
    medication_type: MedicationType = MedicationType.STANDARD
    weekend_multiplier: float = Field(1.5, ge=1.0)
    holiday_multiplier: float = Field(2.0, ge=1.0)


class CommandStatusInfo(BaseModel):
    current: CommandStatus = CommandStatus.ACTIVE
    is_active: bool = True
    is_prn: bool = False
    last_status_change: datetime
    status_changed_by: str
    status_reason: Optional[str] = None
    discontinued_at: Optional[datetime] = None
    discontinued_by: Optional[str] = None
    discontinuation_reason: Optional[str] = None


class SeparationRule(BaseModel):
    """Minimum gap between this command's doses and another medication's"""
    medication_name: str = Field(..., min_length=1)
    min_minutes: int = Field(..., ge=1)


class CommandPreferences(BaseModel):
    time_slot: Optional[TimeSlot] = None
    separation_rules: List[SeparationRule] = Field(default_factory=list)


class CommandMetadata(BaseModel):
    version: int = Field(1, ge=1)
    created_at: datetime
    created_by: str
    updated_at: datetime
    updated_by: str
    checksum: str = ""
    migrated_from: Optional[str] = None


class MedicationCommand(BaseModel):
    """Full command document as stored"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    medication: MedicationInfo
    schedule: ScheduleConfig
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)
    grace_period: GracePeriodSettings = Field(default_factory=GracePeriodSettings)
    status: CommandStatusInfo
    preferences: CommandPreferences = Field(default_factory=CommandPreferences)
    metadata: CommandMetadata

    @property
    def is_prn(self) -> bool:
        return self.status.is_prn or self.schedule.frequency == Frequency.AS_NEEDED

    @property
    def is_active(self) -> bool:
        return self.status.current == CommandStatus.ACTIVE

    def compute_checksum(self) -> str:
        """SHA-256 over the clinically meaningful content of the command"""
        content = self.model_dump(
            mode="json",
            include={"patient_id", "medication", "schedule", "reminders", "grace_period", "preferences"},
        )
        payload = json.dumps(content, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
