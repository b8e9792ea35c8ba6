"""
Daily Reset Service
End-of-day archival of a patient's events into a daily summary
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from domain.enums import EventType
from domain.summary import DailySummary, MedicationBreakdown
from services.clock import Clock
from services.event_service import load_calendar_context
from services.notification_service import NotificationDispatcher, NotificationRequest, NotificationType
from services.repository import EventQuery, MedicationRepository
from tools.adherence_math import calculate_metrics
from tools.event_replay import derive_dose_states
from tools.timezone_utils import get_zone, local_day_bounds, previous_local_day


logger = logging.getLogger(__name__)


@dataclass
class DailyResetResult:
    patient_id: str
    summary_date: date
    timezone: str
    dry_run: bool
    already_archived: bool
    summary: DailySummary
    archived_event_ids: List[str] = field(default_factory=list)

    @property
    def archived_event_count(self) -> int:
        return len(self.archived_event_ids)


class DailyResetService:
    """
    Service for the daily archival job
    """

    def __init__(
        self,
        repository: MedicationRepository,
        clock: Clock,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.notifier = notifier

    async def build_summary(self, patient_id: str, summary_date: date, tz_name: str) -> DailySummary:
        """Compute the summary of a local day from the event log without writing anything"""
        zone = get_zone(tz_name)
        start, end = local_day_bounds(summary_date, zone)

        events = await self.repository.query_events(EventQuery(
            patient_id=patient_id,
            scheduled_from=start,
            scheduled_to=end,
        ))
        commands = await self.repository.query_commands(patient_id)
        prn_ids = {c.id for c in commands if c.is_prn}

        states = derive_dose_states(events)
        doses = [s for s in states.values() if s.command_id not in prn_ids]
        metrics = calculate_metrics(doses)

        snoozes = Counter(
            e.command_id for e in events
            if e.event_type == EventType.DOSE_SNOOZED and e.command_id not in prn_ids
        )
        breakdown = {
            command_id: MedicationBreakdown(
                medication_name=med.medication_name,
                scheduled=med.scheduled,
                taken=med.taken,
                missed=med.missed,
                skipped=med.skipped,
                snoozed=snoozes.get(command_id, 0),
                adherence_rate=med.adherence_rate,
            )
            for command_id, med in metrics.by_medication.items()
        }

        return DailySummary(
            id=str(uuid.uuid4()),
            patient_id=patient_id,
            summary_date=summary_date,
            timezone=zone.key,
            total_scheduled=metrics.total_scheduled,
            total_taken=metrics.total_taken,
            total_missed=metrics.total_missed,
            total_skipped=metrics.total_skipped,
            total_snoozed=sum(snoozes.values()),
            adherence_rate=metrics.adherence_rate,
            on_time_rate=metrics.on_time_rate,
            average_delay_minutes=metrics.average_delay_minutes,
            by_medication=breakdown,
            archived_event_ids=[e.id for e in events if not e.archive_status.is_archived],
            created_at=self.clock.now(),
        )

    async def run_daily_reset(
        self,
        patient_id: str,
        summary_date: Optional[date] = None,
        timezone: Optional[str] = None,
        dry_run: bool = False,
    ) -> DailyResetResult:
        """
        Archive one patient-local day and store its summary

        Args:
            patient_id: Patient to archive
            summary_date: Local day to archive; defaults to the day that just ended
            timezone: IANA timezone; defaults to the patient's preference
            dry_run: Compute the summary without writing

        Returns:
            DailyResetResult; already_archived is set when a summary existed
        """
        if timezone is None:
            calendar = await load_calendar_context(self.repository, patient_id)
            zone = calendar.zone
        else:
            zone = get_zone(timezone)

        summary_date = summary_date or previous_local_day(self.clock.now(), zone)

        existing = await self.repository.get_daily_summary(patient_id, summary_date)
        if existing is not None:
            logger.info(f"Day {summary_date} already archived for patient {patient_id}")
            return DailyResetResult(
                patient_id=patient_id,
                summary_date=summary_date,
                timezone=existing.timezone,
                dry_run=dry_run,
                already_archived=True,
                summary=existing,
            )

        summary = await self.build_summary(patient_id, summary_date, zone.key)

        if dry_run:
            logger.info(
                f"[DRY RUN] Patient {patient_id} {summary_date}: "
                f"{summary.total_taken}/{summary.total_scheduled} taken, "
                f"{len(summary.archived_event_ids)} events would be archived"
            )
            return DailyResetResult(
                patient_id=patient_id,
                summary_date=summary_date,
                timezone=zone.key,
                dry_run=True,
                already_archived=False,
                summary=summary,
                archived_event_ids=list(summary.archived_event_ids),
            )

        archive = await self.repository.archive_day(summary, summary.archived_event_ids, self.clock.now())
        if not archive.created:
            return DailyResetResult(
                patient_id=patient_id,
                summary_date=summary_date,
                timezone=archive.summary.timezone,
                dry_run=False,
                already_archived=True,
                summary=archive.summary,
            )

        logger.info(
            f"Archived {len(archive.archived_event_ids)} events for patient {patient_id} on {summary_date}"
        )
        if self.notifier:
            self.notifier.dispatch(NotificationRequest(
                patient_id=patient_id,
                notification_type=NotificationType.DAILY_SUMMARY,
                data={
                    "taken": summary.total_taken,
                    "scheduled": summary.total_scheduled,
                    "date": summary_date.isoformat(),
                },
            ))
        return DailyResetResult(
            patient_id=patient_id,
            summary_date=summary_date,
            timezone=zone.key,
            dry_run=False,
            already_archived=False,
            summary=summary,
            archived_event_ids=archive.archived_event_ids,
        )

    async def get_summary(self, patient_id: str, summary_date: date) -> Optional[DailySummary]:
        return await self.repository.get_daily_summary(patient_id, summary_date)

    async def list_summaries(self, patient_id: str, from_date: date, to_date: date) -> List[DailySummary]:
        return await self.repository.list_daily_summaries(patient_id, from_date, to_date)
