"""
Adherence Service
Adherence metrics, streaks and milestones derived from the event log
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Set

from config import scheduling_config
from domain.enums import CommandStatus
from domain.event import MedicationEvent
from exceptions import ValidationError
from services.clock import Clock
from services.event_service import load_calendar_context
from services.notification_service import NotificationDispatcher, NotificationRequest, NotificationType
from services.repository import EventQuery, MedicationRepository
from tools.adherence_math import (
    AdherenceMetrics,
    StreakInfo,
    calculate_metrics,
    calculate_streak,
    new_milestones,
)
from tools.event_replay import derive_dose_states
from tools.timezone_utils import ensure_utc, local_date, local_day_bounds


logger = logging.getLogger(__name__)


IMPACT_WINDOW_DAYS = 30


@dataclass
class AdherenceImpact:
    """Adherence score of a medication before and after an event, 0-100"""
    command_id: str
    previous_score: float
    new_score: float

    @property
    def delta(self) -> float:
        return round(self.new_score - self.previous_score, 2)


@dataclass
class Milestone:
    command_id: str
    medication_name: str
    threshold: int
    current_streak: int


def metrics_from_events(
    events: Iterable[MedicationEvent],
    excluded_command_ids: Set[str],
    due_before: datetime,
    command_id: Optional[str] = None,
) -> AdherenceMetrics:
    """Replay events and aggregate the doses that were due before a cutoff"""
    states = derive_dose_states(events)
    doses = [
        s for s in states.values()
        if s.command_id not in excluded_command_ids
        and s.scheduled_for <= due_before
        and (command_id is None or s.command_id == command_id)
    ]
    return calculate_metrics(doses)


class AdherenceService:
    """
    Service for adherence analytics
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

    async def _prn_command_ids(self, patient_id: str) -> Set[str]:
        commands = await self.repository.query_commands(patient_id)
        return {c.id for c in commands if c.is_prn}

    async def _events_between(self, patient_id: str, start: datetime, end: datetime) -> List[MedicationEvent]:
        return await self.repository.query_events(EventQuery(
            patient_id=patient_id,
            scheduled_from=start,
            scheduled_to=end,
        ))

    async def calculate_adherence_metrics(
        self,
        patient_id: str,
        from_date: date,
        to_date: date,
        command_id: Optional[str] = None,
    ) -> AdherenceMetrics:
        """
        Adherence over patient-local days from_date..to_date inclusive

        Args:
            patient_id: Patient to report on
            from_date: First local day
            to_date: Last local day
            command_id: Restrict to one medication

        Returns:
            AdherenceMetrics; PRN commands and doses not yet due are excluded
        """
        if from_date > to_date:
            raise ValidationError("from_date", "must not be after to_date")

        calendar = await load_calendar_context(self.repository, patient_id)
        start = local_day_bounds(from_date, calendar.zone)[0]
        end = local_day_bounds(to_date, calendar.zone)[1]
        now = self.clock.now()

        events = await self._events_between(patient_id, start, end)
        excluded = await self._prn_command_ids(patient_id)
        metrics = metrics_from_events(events, excluded, now, command_id)

        logger.info(
            f"Adherence for patient {patient_id} {from_date}..{to_date}: "
            f"{metrics.total_taken}/{metrics.total_scheduled} ({metrics.adherence_rate:.2%})"
        )
        return metrics

    async def get_streak(self, patient_id: str, command_id: Optional[str] = None) -> StreakInfo:
        calendar = await load_calendar_context(self.repository, patient_id)
        now = self.clock.now()
        today = local_date(now, calendar.zone)
        start = local_day_bounds(today - timedelta(days=scheduling_config.STREAK_LOOKBACK_DAYS), calendar.zone)[0]

        events = await self._events_between(patient_id, start, now + timedelta(seconds=1))
        excluded = await self._prn_command_ids(patient_id)
        states = derive_dose_states(events)
        doses = [
            s for s in states.values()
            if s.command_id not in excluded and (command_id is None or s.command_id == command_id)
        ]
        return calculate_streak(doses, calendar.zone, today)

    async def check_milestones(self, patient_id: str) -> List[Milestone]:
        """Record and announce streak milestones not yet reported, per medication"""
        commands = await self.repository.query_commands(patient_id, [CommandStatus.ACTIVE])
        reached = []
        for command in commands:
            if command.is_prn:
                continue
            streak = await self.get_streak(patient_id, command.id)
            reported = await self.repository.get_reported_milestones(patient_id, command.id)
            for threshold in new_milestones(streak.current_streak, reported):
                recorded = await self.repository.record_milestone(
                    patient_id, command.id, threshold, self.clock.now()
                )
                if not recorded:
                    continue
                reached.append(Milestone(
                    command_id=command.id,
                    medication_name=command.medication.name,
                    threshold=threshold,
                    current_streak=streak.current_streak,
                ))
                logger.info(f"Patient {patient_id} reached {threshold}-day streak on {command.medication.name}")
                if self.notifier:
                    self.notifier.dispatch(NotificationRequest(
                        patient_id=patient_id,
                        notification_type=NotificationType.STREAK_MILESTONE,
                        data={"medication": command.medication.name, "threshold": threshold},
                    ))
        return reached

    async def estimate_impact(self, event: MedicationEvent, new_event: MedicationEvent) -> AdherenceImpact:
        """
        Adherence score of the event's medication over the trailing window,
        without and with new_event applied.
        """
        calendar = await load_calendar_context(self.repository, event.patient_id)
        anchor = ensure_utc(event.timing.scheduled_for or event.timing.event_timestamp)
        day = local_date(anchor, calendar.zone)
        start = local_day_bounds(day - timedelta(days=IMPACT_WINDOW_DAYS - 1), calendar.zone)[0]
        end = local_day_bounds(day, calendar.zone)[1]
        now = self.clock.now()

        events = await self.repository.query_events(EventQuery(
            command_id=event.command_id,
            scheduled_from=start,
            scheduled_to=end,
        ))
        events = [e for e in events if e.id != new_event.id]
        before = metrics_from_events(events, set(), now, event.command_id)
        after = metrics_from_events(events + [new_event], set(), now, event.command_id)
        return AdherenceImpact(
            command_id=event.command_id,
            previous_score=round(before.adherence_rate * 100, 2),
            new_score=round(after.adherence_rate * 100, 2),
        )

