"""
Services Module
Business logic layer for the MedCommand application
"""

from services.repository import (
    MedicationRepository,
    SQLAlchemyMedicationRepository,
    EventQuery,
    CascadeDeleteResult,
)
from services.clock import Clock, SystemClock, FixedClock
from services.command_service import CommandService
from services.event_service import EventService
from services.undo_service import UndoService
from services.adherence_service import AdherenceService
from services.daily_reset_service import DailyResetService
from services.time_bucket_service import TimeBucketService
from services.container import ServiceContainer, build_container


__all__ = [
    # Persistence
    "MedicationRepository",
    "SQLAlchemyMedicationRepository",
    "EventQuery",
    "CascadeDeleteResult",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Services
    "CommandService",
    "EventService",
    "UndoService",
    "AdherenceService",
    "DailyResetService",
    "TimeBucketService",
    # Wiring
    "ServiceContainer",
    "build_container",
]
