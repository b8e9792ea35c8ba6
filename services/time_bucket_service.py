"""
Time Bucket Service
Patient time-of-day preferences and the today view built on them
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from config import settings
from domain.enums import CommandStatus
from domain.preferences import PatientTimePreferences, TimeBucketWindow
from exceptions import ValidationError, validation_error_from_pydantic
from services.clock import Clock
from services.repository import EventQuery, MedicationRepository
from tools.dose_bucketing import TodayBuckets, compute_today_buckets
from tools.schedule_computer import validate_time_buckets
from tools.timezone_utils import get_zone, local_date, local_day_bounds


logger = logging.getLogger(__name__)


@dataclass
class PreferencesUpdateResult:
    preferences: PatientTimePreferences
    warnings: List[str] = field(default_factory=list)


class TimeBucketService:
    """
    Service for time bucket preferences and bucketed views
    """

    def __init__(self, repository: MedicationRepository, clock: Clock):
        self.repository = repository
        self.clock = clock

    async def get_preferences(self, patient_id: str) -> PatientTimePreferences:
        """Stored preferences, or the defaults when the patient has none"""
        preferences = await self.repository.get_time_preferences(patient_id)
        return preferences or PatientTimePreferences(patient_id=patient_id)

    async def update_preferences(
        self,
        patient_id: str,
        morning: Optional[TimeBucketWindow] = None,
        lunch: Optional[TimeBucketWindow] = None,
        evening: Optional[TimeBucketWindow] = None,
        before_bed: Optional[TimeBucketWindow] = None,
        timezone: Optional[str] = None,
        holidays: Optional[Sequence[date]] = None,
        expected_version: Optional[int] = None,
    ) -> PreferencesUpdateResult:
        """
        Replace some or all of a patient's bucket windows.

        Rejects configurations with errors (zero-length windows, defaults
        outside their window) and returns overlap warnings.
        """
        current = await self.repository.get_time_preferences(patient_id)
        base = current or PatientTimePreferences(patient_id=patient_id)

        document = base.model_dump()
        for key, window in (("morning", morning), ("lunch", lunch), ("evening", evening), ("before_bed", before_bed)):
            if window is not None:
                document[key] = window.model_dump()
        if timezone is not None:
            get_zone(timezone)
            document["timezone"] = timezone
        if holidays is not None:
            document["holidays"] = list(holidays)
        document["version"] = base.version + 1 if current else 1

        try:
            updated = PatientTimePreferences.model_validate(document)
        except PydanticValidationError as e:
            raise validation_error_from_pydantic(e) from e

        validation = validate_time_buckets(updated)
        if not validation.is_valid:
            logger.warning(f"Rejected time buckets for patient {patient_id}: {validation.errors}")
            raise ValidationError("time_buckets", "; ".join(validation.errors))

        await self.repository.put_time_preferences(
            updated,
            expected_version=expected_version if expected_version is not None else (current.version if current else None),
        )
        logger.info(f"Updated time preferences for patient {patient_id} (version {updated.version})")
        return PreferencesUpdateResult(preferences=updated, warnings=validation.warnings)

    async def get_today_buckets(self, patient_id: str) -> TodayBuckets:
        preferences = await self.repository.get_time_preferences(patient_id)
        tz_name = preferences.timezone if preferences else settings.DEFAULT_TIMEZONE
        zone = get_zone(tz_name)
        now = self.clock.now()
        start, end = local_day_bounds(local_date(now, zone), zone)

        commands = await self.repository.query_commands(patient_id, [CommandStatus.ACTIVE])
        events = await self.repository.query_events(EventQuery(
            patient_id=patient_id,
            scheduled_from=start,
            scheduled_to=end,
            is_archived=False,
        ))
        return compute_today_buckets(now, commands, events, zone)
