"""
Service Container
Builds every service once and wires their dependencies explicitly
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import settings
from services.adherence_service import AdherenceService
from services.clock import Clock, SystemClock
from services.command_service import CommandService
from services.daily_reset_service import DailyResetService
from services.event_service import EventService
from services.notification_service import NotificationDispatcher, NotificationSender, build_sender
from services.repository import MedicationRepository, SQLAlchemyMedicationRepository
from services.time_bucket_service import TimeBucketService
from services.undo_service import UndoService


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    repository: MedicationRepository
    clock: Clock
    notifier: NotificationDispatcher
    commands: CommandService
    events: EventService
    undo: UndoService
    adherence: AdherenceService
    daily_reset: DailyResetService
    time_buckets: TimeBucketService


def build_container(
    session_factory: Optional[Callable[[], Session]] = None,
    clock: Optional[Clock] = None,
    sender: Optional[NotificationSender] = None,
    repository: Optional[MedicationRepository] = None,
) -> ServiceContainer:
    """
    Build the service graph.

    Usage:
        container = build_container(SessionLocal)
        await container.events.mark_taken(...)
    """
    if repository is None:
        if session_factory is None:
            from database import SessionLocal
            session_factory = SessionLocal
        repository = SQLAlchemyMedicationRepository(session_factory)

    clock = clock or SystemClock()
    sender = sender or build_sender(settings.NOTIFICATION_SENDER)
    notifier = NotificationDispatcher(sender, enabled=settings.NOTIFICATIONS_ENABLED)

    events = EventService(repository, clock, notifier)
    adherence = AdherenceService(repository, clock, notifier)

    container = ServiceContainer(
        repository=repository,
        clock=clock,
        notifier=notifier,
        commands=CommandService(repository, clock, notifier),
        events=events,
        undo=UndoService(repository, clock, events, adherence),
        adherence=adherence,
        daily_reset=DailyResetService(repository, clock, notifier),
        time_buckets=TimeBucketService(repository, clock),
    )
    logger.info(f"Service container ready ({type(repository).__name__}, {type(clock).__name__})")
    return container
