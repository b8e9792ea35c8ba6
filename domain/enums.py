"""
Domain Enums
Closed value sets for commands, events and bucketing
"""

from enum import Enum


class Frequency(str, Enum):
    """How often a medication is taken"""
    DAILY = "daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    AS_NEEDED = "as_needed"


class CommandStatus(str, Enum):
    """Lifecycle state of a medication command"""
    ACTIVE = "active"
    PAUSED = "paused"
    HELD = "held"
    DISCONTINUED = "discontinued"
    COMPLETED = "completed"


class MedicationType(str, Enum):
    """Classification that drives grace-period tolerance"""
    CRITICAL = "critical"
    STANDARD = "standard"
    VITAMIN = "vitamin"
    PRN = "prn"


class TimeSlot(str, Enum):
    """Patient-facing time of day a command is assigned to"""
    MORNING = "morning"
    LUNCH = "lunch"
    EVENING = "evening"
    BEFORE_BED = "beforeBed"
    CUSTOM = "custom"


class TimingType(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class EventType(str, Enum):
    """Kinds of entries in the medication event log"""
    DOSE_SCHEDULED = "dose_scheduled"
    DOSE_TAKEN = "dose_taken"
    DOSE_MISSED = "dose_missed"
    DOSE_SKIPPED = "dose_skipped"
    DOSE_SNOOZED = "dose_snoozed"
    DOSE_TAKEN_UNDONE = "dose_taken_undone"
    DOSE_CORRECTED = "dose_corrected"
    STATUS_CHANGED = "status_changed"


class TriggerSource(str, Enum):
    USER_ACTION = "user_action"
    SYSTEM_DETECTED = "system_detected"
    MIGRATION = "migration"


class TimingCategory(str, Enum):
    """How far a take landed from its scheduled time"""
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"
    VERY_LATE = "very_late"


class Bucket(str, Enum):
    """Today-view bucket a command is placed in"""
    NOW = "now"
    DUE_SOON = "due_soon"
    MORNING = "morning"
    LUNCH = "lunch"
    EVENING = "evening"
    BEFORE_BED = "before_bed"
    OVERDUE = "overdue"
    COMPLETED = "completed"


class CorrectedAction(str, Enum):
    """Outcome a correction event replaces the original with"""
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"


# Event types that settle a scheduled dose
RESOLVING_EVENT_TYPES = frozenset({
    EventType.DOSE_TAKEN,
    EventType.DOSE_MISSED,
    EventType.DOSE_SKIPPED,
})


_STATUS_LABELS = {
    EventType.DOSE_SCHEDULED: "Scheduled",
    EventType.DOSE_TAKEN: "Taken",
    EventType.DOSE_MISSED: "Missed",
    EventType.DOSE_SKIPPED: "Skipped",
    EventType.DOSE_SNOOZED: "Snoozed",
    EventType.DOSE_TAKEN_UNDONE: "Undone",
    EventType.DOSE_CORRECTED: "Corrected",
    EventType.STATUS_CHANGED: "Status Changed",
}

_OUTCOME_EVENT_TYPES = {
    CorrectedAction.TAKEN: EventType.DOSE_TAKEN,
    CorrectedAction.MISSED: EventType.DOSE_MISSED,
    CorrectedAction.SKIPPED: EventType.DOSE_SKIPPED,
}


def display_status(event_type: EventType) -> str:
    """Human-readable label for an event type"""
    return _STATUS_LABELS[EventType(event_type)]


def outcome_event_type(action: CorrectedAction) -> EventType:
    """Resolving event type a corrected action stands for"""
    return _OUTCOME_EVENT_TYPES[CorrectedAction(action)]
