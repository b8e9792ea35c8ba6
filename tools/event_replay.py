"""
Event Replay
Folds the append-only event log into the current state of each scheduled dose
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from config import scheduling_config
from domain.enums import (
    EventType,
    RESOLVING_EVENT_TYPES,
    TimingCategory,
    outcome_event_type,
)
from domain.event import MedicationEvent
from tools.take_scoring import categorize_timing
from tools.timezone_utils import ensure_utc, floor_minutes_between


logger = logging.getLogger(__name__)

DoseKey = Tuple[str, datetime]


@dataclass
class DoseState:
    """Current state of one (command, scheduled time) dose"""
    command_id: str
    scheduled_for: datetime
    medication_name: str = ""
    scheduled_event_id: Optional[str] = None
    outcome: Optional[EventType] = None
    resolving_event_id: Optional[str] = None
    taken_at: Optional[datetime] = None
    is_on_time: Optional[bool] = None
    minutes_late: Optional[int] = None
    timing_category: Optional[TimingCategory] = None
    overall_score: Optional[float] = None
    corrected: bool = False
    snooze_count: int = 0
    snoozed_until: Optional[datetime] = None
    undone_event_ids: List[str] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.outcome is not None

    @property
    def is_taken(self) -> bool:
        return self.outcome == EventType.DOSE_TAKEN

    def clear_outcome(self) -> None:
        self.outcome = None
        self.resolving_event_id = None
        self.taken_at = None
        self.is_on_time = None
        self.minutes_late = None
        self.timing_category = None
        self.overall_score = None
        self.corrected = False


# Tie-break for events recorded at the same instant
_REPLAY_RANK = {
    EventType.DOSE_SCHEDULED: 0,
    EventType.DOSE_SNOOZED: 1,
    EventType.DOSE_TAKEN: 2,
    EventType.DOSE_MISSED: 2,
    EventType.DOSE_SKIPPED: 2,
    EventType.DOSE_TAKEN_UNDONE: 3,
    EventType.DOSE_CORRECTED: 4,
    EventType.STATUS_CHANGED: 5,
}


def _ordered(events: Iterable[MedicationEvent]) -> List[MedicationEvent]:
    return sorted(
        events,
        key=lambda e: (ensure_utc(e.timing.event_timestamp), _REPLAY_RANK[e.event_type], e.id),
    )


def _dose_key(event: MedicationEvent, events_by_id: Dict[str, MedicationEvent]) -> Optional[DoseKey]:
    scheduled_for = event.timing.scheduled_for
    if scheduled_for is None and event.event_data.original_event_id:
        original = events_by_id.get(event.event_data.original_event_id)
        if original is not None:
            scheduled_for = original.timing.scheduled_for
    if scheduled_for is None:
        return None
    return event.command_id, ensure_utc(scheduled_for)


def _resolve_with(state: DoseState, event: MedicationEvent) -> None:
    state.outcome = event.event_type
    state.resolving_event_id = event.id
    state.corrected = False
    if event.event_type == EventType.DOSE_TAKEN:
        tracking = event.event_data.adherence_tracking
        state.taken_at = ensure_utc(event.timing.event_timestamp)
        state.is_on_time = event.timing.is_on_time
        state.minutes_late = event.timing.minutes_late
        state.timing_category = tracking.timing_category if tracking else None
        state.overall_score = tracking.overall_score if tracking else None


def _apply_correction(state: DoseState, event: MedicationEvent) -> None:
    data = event.event_data
    previous_taken = state.taken_at if state.is_taken else None
    previous_on_time = state.is_on_time if state.is_taken else None
    previous_late = state.minutes_late if state.is_taken else None

    state.clear_outcome()
    state.outcome = outcome_event_type(data.corrected_action)
    state.resolving_event_id = event.id
    state.corrected = True

    if state.outcome != EventType.DOSE_TAKEN:
        return

    corrected = data.corrected_data
    if corrected.taken_at is not None:
        state.taken_at = ensure_utc(corrected.taken_at)
        minutes = floor_minutes_between(state.taken_at, state.scheduled_for)
        state.minutes_late = max(0, minutes)
        state.is_on_time = abs(minutes) <= scheduling_config.ON_TIME_WINDOW_MINUTES
        state.timing_category = categorize_timing(minutes)
    else:
        state.taken_at = previous_taken
        state.is_on_time = corrected.is_on_time if corrected.is_on_time is not None else previous_on_time
        state.minutes_late = corrected.minutes_late if corrected.minutes_late is not None else previous_late
        if state.minutes_late is not None:
            state.timing_category = categorize_timing(state.minutes_late)


def apply_event(
    states: Dict[DoseKey, DoseState],
    event: MedicationEvent,
    events_by_id: Dict[str, MedicationEvent],
) -> None:
    """Apply one event to the dose states in place"""
    key = _dose_key(event, events_by_id)
    if key is None:
        return

    state = states.get(key)
    if state is None:
        state = DoseState(command_id=key[0], scheduled_for=key[1])
        states[key] = state
    state.medication_name = state.medication_name or event.context.medication_name

    event_type = event.event_type
    if event_type == EventType.DOSE_SCHEDULED:
        state.scheduled_event_id = state.scheduled_event_id or event.id
    elif event_type in RESOLVING_EVENT_TYPES:
        if state.is_resolved:
            logger.debug(f"Ignoring extra resolving event {event.id} for dose {key}")
            return
        _resolve_with(state, event)
    elif event_type == EventType.DOSE_SNOOZED:
        state.snooze_count += 1
        minutes = event.event_data.snooze_minutes or 0
        state.snoozed_until = ensure_utc(event.timing.event_timestamp) + timedelta(minutes=minutes)
    elif event_type == EventType.DOSE_TAKEN_UNDONE:
        original_id = event.event_data.original_event_id
        state.undone_event_ids.append(original_id)
        if state.resolving_event_id == original_id:
            state.clear_outcome()
    elif event_type == EventType.DOSE_CORRECTED:
        _apply_correction(state, event)


def derive_dose_states(events: Iterable[MedicationEvent]) -> Dict[DoseKey, DoseState]:
    """
    Replay events in recording order and return the state of every dose.

    Undo removes the effect of the take it references; a correction
    replaces whatever outcome the dose had.
    """
    ordered = _ordered(events)
    events_by_id = {e.id: e for e in ordered}
    states: Dict[DoseKey, DoseState] = {}
    for event in ordered:
        apply_event(states, event, events_by_id)
    return states


def undone_event_ids(events: Iterable[MedicationEvent]) -> set:
    return {
        e.event_data.original_event_id
        for e in events
        if e.event_type == EventType.DOSE_TAKEN_UNDONE and e.event_data.original_event_id
    }
