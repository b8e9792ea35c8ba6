"""
Domain Module
Pydantic models for medication commands, events, preferences and summaries
"""

from domain.enums import (
    Frequency,
    CommandStatus,
    MedicationType,
    TimeSlot,
    TimingType,
    EventType,
    TriggerSource,
    TimingCategory,
    Bucket,
    CorrectedAction,
    RESOLVING_EVENT_TYPES,
    display_status,
)
from domain.command import (
    MedicationInfo,
    ScheduleConfig,
    ReminderSettings,
    GracePeriodSettings,
    CommandStatusInfo,
    SeparationRule,
    CommandPreferences,
    CommandMetadata,
    MedicationCommand,
)
from domain.event import (
    AdherenceTracking,
    CorrectedData,
    EventData,
    EventTiming,
    EventContext,
    ArchiveStatus,
    MedicationEvent,
    EventDraft,
)
from domain.preferences import TimeBucketWindow, PatientTimePreferences
from domain.summary import MedicationBreakdown, DailySummary


__all__ = [
    "Frequency",
    "CommandStatus",
    "MedicationType",
    "TimeSlot",
    "TimingType",
    "EventType",
    "TriggerSource",
    "TimingCategory",
    "Bucket",
    "CorrectedAction",
    "RESOLVING_EVENT_TYPES",
    "display_status",
    "MedicationInfo",
    "ScheduleConfig",
    "ReminderSettings",
    "GracePeriodSettings",
    "CommandStatusInfo",
    "SeparationRule",
    "CommandPreferences",
    "CommandMetadata",
    "MedicationCommand",
    "AdherenceTracking",
    "CorrectedData",
    "EventData",
    "EventTiming",
    "EventContext",
    "ArchiveStatus",
    "MedicationEvent",
    "EventDraft",
    "TimeBucketWindow",
    "PatientTimePreferences",
    "MedicationBreakdown",
    "DailySummary",
]
