"""
Medication Repository
Persistence port for commands, events, summaries and preferences, with a
SQLAlchemy implementation
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import models
from domain.command import MedicationCommand
from domain.enums import CommandStatus, EventType
from domain.event import MedicationEvent
from domain.preferences import PatientTimePreferences
from domain.summary import DailySummary
from exceptions import (
    ConcurrentModification,
    InvariantViolation,
    MedicationError,
    NotFound,
    StorageUnavailable,
    TransactionFailed,
)
from tools.timezone_utils import ensure_utc, to_naive_utc


logger = logging.getLogger(__name__)


@dataclass
class EventQuery:
    """Filter for query_events; unset fields do not filter"""
    patient_id: Optional[str] = None
    command_id: Optional[str] = None
    event_types: Optional[Sequence[EventType]] = None
    scheduled_from: Optional[datetime] = None   # inclusive
    scheduled_to: Optional[datetime] = None     # exclusive
    recorded_since: Optional[datetime] = None
    is_archived: Optional[bool] = None
    limit: Optional[int] = None


@dataclass
class CascadeDeleteResult:
    command_id: str
    command_deleted: bool
    events_deleted: int
    milestones_deleted: int = 0


@dataclass
class ArchiveResult:
    created: bool
    summary: DailySummary
    archived_event_ids: List[str] = field(default_factory=list)


class MedicationRepository(ABC):
    """Storage operations used by the services; every method may raise StorageUnavailable"""

    @abstractmethod
    async def get_command(self, command_id: str) -> Optional[MedicationCommand]: ...

    @abstractmethod
    async def query_commands(
        self,
        patient_id: str,
        statuses: Optional[Sequence[CommandStatus]] = None,
    ) -> List[MedicationCommand]: ...

    @abstractmethod
    async def list_patient_ids(self) -> List[str]: ...

    @abstractmethod
    async def put_command(self, command: MedicationCommand, expected_version: Optional[int] = None) -> None: ...

    @abstractmethod
    async def put_command_with_event(
        self,
        command: MedicationCommand,
        expected_version: int,
        event: MedicationEvent,
    ) -> None: ...

    @abstractmethod
    async def transactional_delete_command_and_events(self, command_id: str) -> CascadeDeleteResult: ...

    @abstractmethod
    async def append_event(self, event: MedicationEvent) -> None: ...

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[MedicationEvent]: ...

    @abstractmethod
    async def query_events(self, query: EventQuery) -> List[MedicationEvent]: ...

    @abstractmethod
    async def archive_day(
        self,
        summary: DailySummary,
        event_ids: Sequence[str],
        archived_at: datetime,
    ) -> ArchiveResult: ...

    @abstractmethod
    async def put_daily_summary(self, summary: DailySummary) -> bool: ...

    @abstractmethod
    async def get_daily_summary(self, patient_id: str, summary_date: date) -> Optional[DailySummary]: ...

    @abstractmethod
    async def list_daily_summaries(self, patient_id: str, from_date: date, to_date: date) -> List[DailySummary]: ...

    @abstractmethod
    async def get_time_preferences(self, patient_id: str) -> Optional[PatientTimePreferences]: ...

    @abstractmethod
    async def put_time_preferences(
        self,
        preferences: PatientTimePreferences,
        expected_version: Optional[int] = None,
    ) -> None: ...

    @abstractmethod
    async def get_reported_milestones(self, patient_id: str, command_id: str) -> Set[int]: ...

    @abstractmethod
    async def record_milestone(
        self,
        patient_id: str,
        command_id: str,
        threshold: int,
        reached_at: datetime,
    ) -> bool: ...


def _command_from_record(record: models.MedicationCommandRecord) -> MedicationCommand:
    return MedicationCommand.model_validate(record.document)


def _event_from_record(record: models.MedicationEventRecord) -> MedicationEvent:
    return MedicationEvent.model_validate(record.document)


def _event_record(event: MedicationEvent) -> models.MedicationEventRecord:
    scheduled_for = event.timing.scheduled_for
    return models.MedicationEventRecord(
        id=event.id,
        command_id=event.command_id,
        patient_id=event.patient_id,
        event_type=event.event_type.value,
        scheduled_for=to_naive_utc(scheduled_for) if scheduled_for else None,
        event_timestamp=to_naive_utc(event.timing.event_timestamp),
        is_archived=event.archive_status.is_archived,
        belongs_to_date=event.archive_status.belongs_to_date,
        document=event.model_dump(mode="json"),
    )


class SQLAlchemyMedicationRepository(MedicationRepository):
    """
    Repository backed by SQLAlchemy sessions.

    Documents are stored as JSON and validated back into domain models on
    every read. Datetime columns hold naive UTC.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, transactional: bool = False) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            if transactional:
                raise TransactionFailed() from e
            raise StorageUnavailable() from e
        except MedicationError:
            session.rollback()
            raise
        finally:
            session.close()

    # ==================== COMMANDS ====================

    async def get_command(self, command_id: str) -> Optional[MedicationCommand]:
        with self._session() as session:
            record = session.get(models.MedicationCommandRecord, command_id)
            return _command_from_record(record) if record else None

    async def query_commands(
        self,
        patient_id: str,
        statuses: Optional[Sequence[CommandStatus]] = None,
    ) -> List[MedicationCommand]:
        with self._session() as session:
            q = session.query(models.MedicationCommandRecord).filter(
                models.MedicationCommandRecord.patient_id == patient_id
            )
            if statuses:
                q = q.filter(models.MedicationCommandRecord.status.in_([CommandStatus(s).value for s in statuses]))
            records = q.order_by(models.MedicationCommandRecord.id).all()
            return [_command_from_record(r) for r in records]

    async def list_patient_ids(self) -> List[str]:
        with self._session() as session:
            rows = session.query(models.MedicationCommandRecord.patient_id).distinct().all()
            return sorted(r[0] for r in rows)

    def _write_command(self, session: Session, command: MedicationCommand, expected_version: Optional[int]) -> None:
        document = command.model_dump(mode="json")
        if expected_version is None:
            session.add(models.MedicationCommandRecord(
                id=command.id,
                patient_id=command.patient_id,
                medication_name=command.medication.name,
                status=command.status.current.value,
                is_prn=command.is_prn,
                version=command.metadata.version,
                document=document,
            ))
            return

        updated = session.query(models.MedicationCommandRecord).filter(
            models.MedicationCommandRecord.id == command.id,
            models.MedicationCommandRecord.version == expected_version,
        ).update({
            models.MedicationCommandRecord.medication_name: command.medication.name,
            models.MedicationCommandRecord.status: command.status.current.value,
            models.MedicationCommandRecord.is_prn: command.is_prn,
            models.MedicationCommandRecord.version: command.metadata.version,
            models.MedicationCommandRecord.document: document,
            models.MedicationCommandRecord.updated_at: datetime.utcnow(),
        }, synchronize_session=False)

        if updated == 0:
            exists = session.get(models.MedicationCommandRecord, command.id) is not None
            if not exists:
                raise NotFound("MedicationCommand", command.id)
            raise ConcurrentModification("MedicationCommand", command.id, expected_version)

    async def put_command(self, command: MedicationCommand, expected_version: Optional[int] = None) -> None:
        with self._session() as session:
            self._write_command(session, command, expected_version)
            session.commit()

    async def put_command_with_event(
        self,
        command: MedicationCommand,
        expected_version: int,
        event: MedicationEvent,
    ) -> None:
        with self._session(transactional=True) as session:
            self._write_command(session, command, expected_version)
            session.add(_event_record(event))
            session.commit()

    async def transactional_delete_command_and_events(self, command_id: str) -> CascadeDeleteResult:
        """
        Delete a command and every event that references it, archived or not,
        in one transaction. Safe to retry after a failed attempt.
        """
        with self._session(transactional=True) as session:
            events_deleted = session.query(models.MedicationEventRecord).filter(
                models.MedicationEventRecord.command_id == command_id
            ).delete(synchronize_session=False)

            milestones_deleted = session.query(models.AdherenceMilestoneRecord).filter(
                models.AdherenceMilestoneRecord.command_id == command_id
            ).delete(synchronize_session=False)

            command_deleted = session.query(models.MedicationCommandRecord).filter(
                models.MedicationCommandRecord.id == command_id
            ).delete(synchronize_session=False) > 0

            remaining = session.query(func.count(models.MedicationEventRecord.id)).filter(
                models.MedicationEventRecord.command_id == command_id
            ).scalar()
            if remaining:
                raise InvariantViolation(
                    f"{remaining} events still reference command {command_id} after delete",
                    {"command_id": command_id, "orphaned_events": remaining},
                )

            session.commit()

        logger.info(
            f"Cascade delete of command {command_id}: "
            f"command_deleted={command_deleted}, events_deleted={events_deleted}"
        )
        return CascadeDeleteResult(
            command_id=command_id,
            command_deleted=command_deleted,
            events_deleted=events_deleted,
            milestones_deleted=milestones_deleted,
        )

    # ==================== EVENTS ====================

    async def append_event(self, event: MedicationEvent) -> None:
        with self._session() as session:
            session.add(_event_record(event))
            session.commit()

    async def get_event(self, event_id: str) -> Optional[MedicationEvent]:
        with self._session() as session:
            record = session.get(models.MedicationEventRecord, event_id)
            return _event_from_record(record) if record else None

    async def query_events(self, query: EventQuery) -> List[MedicationEvent]:
        with self._session() as session:
            E = models.MedicationEventRecord
            q = session.query(E)
            if query.patient_id is not None:
                q = q.filter(E.patient_id == query.patient_id)
            if query.command_id is not None:
                q = q.filter(E.command_id == query.command_id)
            if query.event_types:
                q = q.filter(E.event_type.in_([EventType(t).value for t in query.event_types]))
            if query.scheduled_from is not None:
                q = q.filter(E.scheduled_for >= to_naive_utc(query.scheduled_from))
            if query.scheduled_to is not None:
                q = q.filter(E.scheduled_for < to_naive_utc(query.scheduled_to))
            if query.recorded_since is not None:
                q = q.filter(E.event_timestamp >= to_naive_utc(query.recorded_since))
            if query.is_archived is not None:
                q = q.filter(E.is_archived == query.is_archived)

            q = q.order_by(E.event_timestamp, E.id)
            if query.limit:
                q = q.limit(query.limit)
            return [_event_from_record(r) for r in q.all()]

    # ==================== DAILY SUMMARIES ====================

    async def archive_day(
        self,
        summary: DailySummary,
        event_ids: Sequence[str],
        archived_at: datetime,
    ) -> ArchiveResult:
        """Store the summary and stamp archive status on its events atomically"""
        with self._session(transactional=True) as session:
            existing = session.query(models.DailySummaryRecord).filter(
                models.DailySummaryRecord.patient_id == summary.patient_id,
                models.DailySummaryRecord.summary_date == summary.summary_date,
            ).first()
            if existing is not None:
                return ArchiveResult(created=False, summary=DailySummary.model_validate(existing.document))

            session.add(models.DailySummaryRecord(
                id=summary.id,
                patient_id=summary.patient_id,
                summary_date=summary.summary_date,
                document=summary.model_dump(mode="json"),
            ))

            archived_ids = []
            if event_ids:
                records = session.query(models.MedicationEventRecord).filter(
                    models.MedicationEventRecord.id.in_(list(event_ids)),
                    models.MedicationEventRecord.is_archived.is_(False),
                ).all()
                for record in records:
                    event = _event_from_record(record)
                    event.archive_status.is_archived = True
                    event.archive_status.archived_at = ensure_utc(archived_at)
                    event.archive_status.belongs_to_date = summary.summary_date
                    event.archive_status.daily_summary_id = summary.id
                    record.is_archived = True
                    record.belongs_to_date = summary.summary_date
                    record.document = event.model_dump(mode="json")
                    archived_ids.append(record.id)

            try:
                session.commit()
            except IntegrityError:
                # Another run stored the same day first
                session.rollback()
                existing = session.query(models.DailySummaryRecord).filter(
                    models.DailySummaryRecord.patient_id == summary.patient_id,
                    models.DailySummaryRecord.summary_date == summary.summary_date,
                ).one()
                return ArchiveResult(created=False, summary=DailySummary.model_validate(existing.document))

        return ArchiveResult(created=True, summary=summary, archived_event_ids=archived_ids)

    async def put_daily_summary(self, summary: DailySummary) -> bool:
        with self._session() as session:
            session.add(models.DailySummaryRecord(
                id=summary.id,
                patient_id=summary.patient_id,
                summary_date=summary.summary_date,
                document=summary.model_dump(mode="json"),
            ))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    async def get_daily_summary(self, patient_id: str, summary_date: date) -> Optional[DailySummary]:
        with self._session() as session:
            record = session.query(models.DailySummaryRecord).filter(
                models.DailySummaryRecord.patient_id == patient_id,
                models.DailySummaryRecord.summary_date == summary_date,
            ).first()
            return DailySummary.model_validate(record.document) if record else None

    async def list_daily_summaries(self, patient_id: str, from_date: date, to_date: date) -> List[DailySummary]:
        with self._session() as session:
            records = session.query(models.DailySummaryRecord).filter(
                models.DailySummaryRecord.patient_id == patient_id,
                models.DailySummaryRecord.summary_date >= from_date,
                models.DailySummaryRecord.summary_date <= to_date,
            ).order_by(models.DailySummaryRecord.summary_date).all()
            return [DailySummary.model_validate(r.document) for r in records]

    # ==================== TIME PREFERENCES ====================

    async def get_time_preferences(self, patient_id: str) -> Optional[PatientTimePreferences]:
        with self._session() as session:
            record = session.get(models.PatientTimePreferenceRecord, patient_id)
            return PatientTimePreferences.model_validate(record.document) if record else None

    async def put_time_preferences(
        self,
        preferences: PatientTimePreferences,
        expected_version: Optional[int] = None,
    ) -> None:
        with self._session() as session:
            record = session.get(models.PatientTimePreferenceRecord, preferences.patient_id)
            document = preferences.model_dump(mode="json")
            if record is None:
                session.add(models.PatientTimePreferenceRecord(
                    patient_id=preferences.patient_id,
                    version=preferences.version,
                    document=document,
                ))
            else:
                if expected_version is not None and record.version != expected_version:
                    raise ConcurrentModification("PatientTimePreferences", preferences.patient_id, expected_version)
                record.version = preferences.version
                record.document = document
            session.commit()

    # ==================== MILESTONES ====================

    async def get_reported_milestones(self, patient_id: str, command_id: str) -> Set[int]:
        with self._session() as session:
            rows = session.query(models.AdherenceMilestoneRecord.threshold).filter(
                models.AdherenceMilestoneRecord.patient_id == patient_id,
                models.AdherenceMilestoneRecord.command_id == command_id,
            ).all()
            return {r[0] for r in rows}

    async def record_milestone(
        self,
        patient_id: str,
        command_id: str,
        threshold: int,
        reached_at: datetime,
    ) -> bool:
        with self._session() as session:
            session.add(models.AdherenceMilestoneRecord(
                patient_id=patient_id,
                command_id=command_id,
                threshold=threshold,
                reached_at=to_naive_utc(reached_at),
            ))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True
