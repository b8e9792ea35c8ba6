"""
Dose Bucketing Engine
Places each active command into exactly one bucket of the patient's today view
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from config import scheduling_config
from domain.command import MedicationCommand
from domain.enums import Bucket, TimeSlot, display_status
from domain.event import MedicationEvent
from tools.event_replay import DoseState, derive_dose_states
from tools.schedule_computer import is_due_on
from tools.timezone_utils import (
    combine_local,
    ensure_utc,
    floor_minutes_between,
    get_zone,
    local_date,
)


logger = logging.getLogger(__name__)


SLOT_BUCKETS = {
    TimeSlot.MORNING: Bucket.MORNING,
    TimeSlot.LUNCH: Bucket.LUNCH,
    TimeSlot.EVENING: Bucket.EVENING,
    TimeSlot.BEFORE_BED: Bucket.BEFORE_BED,
}


@dataclass
class BucketItem:
    """One command's entry in the today view"""
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


@dataclass
class BucketSummary:
    total_commands: int = 0
    total_doses_today: int = 0
    completed: int = 0
    overdue: int = 0


@dataclass
class TodayBuckets:
    """Today view grouped by bucket"""
    for_date: date
    timezone: str
    now: List[BucketItem] = field(default_factory=list)
    due_soon: List[BucketItem] = field(default_factory=list)
    morning: List[BucketItem] = field(default_factory=list)
    lunch: List[BucketItem] = field(default_factory=list)
    evening: List[BucketItem] = field(default_factory=list)
    before_bed: List[BucketItem] = field(default_factory=list)
    overdue: List[BucketItem] = field(default_factory=list)
    completed: List[BucketItem] = field(default_factory=list)
    summary: BucketSummary = field(default_factory=BucketSummary)

    def items(self, bucket: Bucket) -> List[BucketItem]:
        return getattr(self, bucket.value)

    def all_items(self) -> List[BucketItem]:
        return [item for bucket in Bucket for item in self.items(bucket)]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def slot_bucket_for_hour(hour: int) -> Bucket:
    if 6 <= hour < 11:
        return Bucket.MORNING
    if 11 <= hour < 15:
        return Bucket.LUNCH
    if 17 <= hour < 21:
        return Bucket.EVENING
    return Bucket.BEFORE_BED


def _todays_instances(
    command: MedicationCommand,
    states: Dict,
    today: date,
    zone: ZoneInfo,
) -> List[DoseState]:
    """Dose instances of a command due on the local day, ordered by time"""
    instances: Dict[datetime, DoseState] = {}
    if is_due_on(command, today):
        for hhmm in command.schedule.times:
            scheduled = combine_local(today, hhmm, zone)
            instances[scheduled] = DoseState(command_id=command.id, scheduled_for=scheduled)

    for (command_id, scheduled), state in states.items():
        if command_id == command.id and local_date(scheduled, zone) == today:
            instances[scheduled] = state

    return [instances[k] for k in sorted(instances)]


def _completed_item(
    command: MedicationCommand,
    instances: List[DoseState],
    zone: ZoneInfo,
) -> BucketItem:
    last = instances[-1]
    return BucketItem(
        command_id=command.id,
        medication_name=command.medication.name,
        dosage=command.medication.dosage,
        bucket=Bucket.COMPLETED,
        scheduled_for=last.scheduled_for,
        scheduled_time=last.scheduled_for.astimezone(zone).strftime("%H:%M"),
        doses_today=len(instances),
        doses_completed=len(instances),
        time_slot=command.preferences.time_slot,
        status_label=display_status(last.outcome),
        is_on_time=last.is_on_time,
        minutes_late=last.minutes_late,
        completed_at=last.taken_at,
    )


def _classify(
    minutes_until_due: int,
    command: MedicationCommand,
    scheduled_local: datetime,
) -> Bucket:
    if minutes_until_due < 0:
        return Bucket.OVERDUE
    if minutes_until_due <= scheduling_config.NOW_WINDOW_MINUTES:
        return Bucket.NOW
    if minutes_until_due <= scheduling_config.DUE_SOON_WINDOW_MINUTES:
        return Bucket.DUE_SOON
    slot = command.preferences.time_slot
    if slot in SLOT_BUCKETS:
        return SLOT_BUCKETS[slot]
    return slot_bucket_for_hour(scheduled_local.hour)


def compute_today_buckets(
    now: datetime,
    active_commands: Iterable[MedicationCommand],
    todays_events: Iterable[MedicationEvent],
    timezone: Union[str, ZoneInfo],
) -> TodayBuckets:
    """
    Build the today view for one patient.

    Every active, non-PRN command with doses today lands in exactly one
    bucket, keyed on its first unresolved dose; commands whose doses are
    all resolved land in completed. The result depends only on the inputs.
    """
    zone = timezone if isinstance(timezone, ZoneInfo) else get_zone(timezone)
    now = ensure_utc(now)
    today = local_date(now, zone)
    states = derive_dose_states(todays_events)

    result = TodayBuckets(for_date=today, timezone=zone.key)

    for command in sorted(active_commands, key=lambda c: c.id):
        if command.is_prn or not command.is_active:
            continue

        instances = _todays_instances(command, states, today, zone)
        if not instances:
            continue

        result.summary.total_commands += 1
        result.summary.total_doses_today += len(instances)
        resolved = sum(1 for s in instances if s.is_resolved)

        current = next((s for s in instances if not s.is_resolved), None)
        if current is None:
            result.completed.append(_completed_item(command, instances, zone))
            result.summary.completed += 1
            continue

        scheduled_local = current.scheduled_for.astimezone(zone)
        minutes_until_due = floor_minutes_between(current.scheduled_for, now)
        bucket = _classify(minutes_until_due, command, scheduled_local)

        item = BucketItem(
            command_id=command.id,
            medication_name=command.medication.name,
            dosage=command.medication.dosage,
            bucket=bucket,
            scheduled_for=current.scheduled_for,
            scheduled_time=scheduled_local.strftime("%H:%M"),
            doses_today=len(instances),
            doses_completed=resolved,
            time_slot=command.preferences.time_slot,
            minutes_until_due=minutes_until_due,
            snoozed_until=current.snoozed_until,
        )
        if bucket == Bucket.OVERDUE:
            item.minutes_overdue = abs(minutes_until_due)
            result.summary.overdue += 1
        result.items(bucket).append(item)

    for bucket in Bucket:
        result.items(bucket).sort(key=lambda i: (i.scheduled_for, i.command_id))

    logger.debug(
        f"Bucketed {result.summary.total_commands} commands for {today}: "
        f"{result.summary.completed} completed, {result.summary.overdue} overdue"
    )
    return result
