"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all MedCommand tests.
Fixtures include database engines, the service container, a fixed clock,
test clients and factories for commands and events.
"""

import os
import sys
import uuid
from datetime import datetime, date, timedelta
from typing import Any, Dict, Generator, List, Optional

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["NOTIFICATIONS_ENABLED"] = "false"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import init_db, drop_db
from domain.command import (
    CommandMetadata,
    CommandPreferences,
    CommandStatusInfo,
    GracePeriodSettings,
    MedicationCommand,
    MedicationInfo,
    ScheduleConfig,
)
from domain.enums import CommandStatus, EventType, Frequency, MedicationType, TimeSlot
from domain.event import EventContext, EventData, EventDraft, MedicationEvent
from domain.preferences import PatientTimePreferences
from services.clock import FixedClock
from services.container import ServiceContainer, build_container
from services.repository import SQLAlchemyMedicationRepository
from app import app
from tests import API, NOW, PATIENT_ID


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    init_db(bind=engine)

    yield engine

    # Cleanup
    drop_db(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )


@pytest.fixture
def repository(session_factory) -> SQLAlchemyMedicationRepository:
    return SQLAlchemyMedicationRepository(session_factory)


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at NOW"""
    return FixedClock(NOW)


@pytest.fixture
def container(session_factory, clock) -> ServiceContainer:
    """Fully wired services over the test database"""
    return build_container(session_factory, clock=clock)


@pytest.fixture(scope="function")
def client(container: ServiceContainer) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client using the test container"""
    app.state.container = container

    with TestClient(app) as test_client:
        yield test_client

    app.state.container = None


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def medication_info() -> MedicationInfo:
    return MedicationInfo(
        name="Metformin",
        generic_name="metformin hydrochloride",
        dosage="500mg",
        instructions="Take with meals",
        should_take_with_food=True,
    )


@pytest_asyncio.fixture
async def utc_patient(repository) -> str:
    """Patient whose local day is the UTC day, with default bucket windows"""
    await repository.put_time_preferences(PatientTimePreferences(patient_id=PATIENT_ID, timezone="UTC"))
    return PATIENT_ID


@pytest_asyncio.fixture
async def daily_command(container, clock, utc_patient, medication_info) -> MedicationCommand:
    """Active daily 08:00 command created two days before NOW"""
    clock.set(NOW - timedelta(days=2))
    command = await container.commands.create_command(
        patient_id=utc_patient,
        medication=medication_info,
        frequency=Frequency.DAILY,
        start_date=date(2024, 3, 1),
        actor="patient",
        times=["08:00"],
    )
    clock.set(NOW)
    return command


@pytest_asyncio.fixture
async def prn_command(container, clock, utc_patient) -> MedicationCommand:
    """Active as-needed command"""
    clock.set(NOW - timedelta(days=2))
    command = await container.commands.create_command(
        patient_id=utc_patient,
        medication=MedicationInfo(name="Ibuprofen", dosage="200mg"),
        frequency=Frequency.AS_NEEDED,
        start_date=date(2024, 3, 1),
        actor="patient",
    )
    clock.set(NOW)
    return command


# ==================== API FIXTURES ====================

@pytest.fixture
def api_patient(client: TestClient) -> str:
    """Patient on UTC created through the API"""
    response = client.put(f"{API}/patients/{PATIENT_ID}/time-preferences", json={"timezone": "UTC"})
    assert response.status_code == 200
    return PATIENT_ID


@pytest.fixture
def command_create_data(api_patient) -> Dict[str, Any]:
    """Sample data for creating a daily 08:00 command"""
    return {
        "patient_id": api_patient,
        "medication": {
            "name": "Lisinopril",
            "generic_name": "lisinopril",
            "dosage": "10mg",
            "instructions": "Take in the morning",
        },
        "frequency": "daily",
        "start_date": "2024-03-01",
        "times": ["08:00"],
        "actor": "doctor",
    }


@pytest.fixture
def api_command(client: TestClient, clock: FixedClock, command_create_data) -> Dict[str, Any]:
    """Command created through the API two days before NOW"""
    clock.set(NOW - timedelta(days=2))
    response = client.post(f"{API}/commands/", json=command_create_data)
    clock.set(NOW)
    assert response.status_code == 201
    return response.json()


# ==================== FACTORY FIXTURES ====================

@pytest.fixture
def command_factory():
    """Build MedicationCommand documents without touching storage"""

    def _make(
        command_id: Optional[str] = None,
        name: str = "Lisinopril",
        dosage: str = "10mg",
        frequency: Frequency = Frequency.DAILY,
        times: Optional[List[str]] = None,
        status: CommandStatus = CommandStatus.ACTIVE,
        time_slot: Optional[TimeSlot] = None,
        start_date: date = date(2024, 3, 1),
        end_date: Optional[date] = None,
        medication_type: MedicationType = MedicationType.STANDARD,
        patient_id: str = PATIENT_ID,
    ) -> MedicationCommand:
        if times is None:
            times = [] if frequency == Frequency.AS_NEEDED else ["08:00"]
        return MedicationCommand(
            id=command_id or str(uuid.uuid4()),
            patient_id=patient_id,
            medication=MedicationInfo(name=name, dosage=dosage),
            schedule=ScheduleConfig(
                frequency=frequency,
                times=times,
                start_date=start_date,
                end_date=end_date,
                is_indefinite=end_date is None,
            ),
            grace_period=GracePeriodSettings(medication_type=medication_type),
            status=CommandStatusInfo(
                current=status,
                is_active=status == CommandStatus.ACTIVE,
                is_prn=frequency == Frequency.AS_NEEDED,
                last_status_change=NOW - timedelta(days=30),
                status_changed_by="test",
            ),
            preferences=CommandPreferences(time_slot=time_slot),
            metadata=CommandMetadata(
                created_at=NOW - timedelta(days=30),
                created_by="test",
                updated_at=NOW - timedelta(days=30),
                updated_by="test",
            ),
        )

    return _make


@pytest.fixture
def event_factory():
    """Build MedicationEvent documents without touching storage"""

    def _make(
        command: MedicationCommand,
        event_type: EventType,
        scheduled_for: Optional[datetime],
        recorded_at: Optional[datetime] = None,
        event_id: Optional[str] = None,
        is_on_time: Optional[bool] = None,
        minutes_late: Optional[int] = None,
        event_data: Optional[EventData] = None,
    ) -> MedicationEvent:
        return EventDraft(
            command_id=command.id,
            patient_id=command.patient_id,
            event_type=event_type,
            scheduled_for=scheduled_for,
            is_on_time=is_on_time,
            minutes_late=minutes_late,
            event_data=event_data or EventData(),
            context=EventContext(medication_name=command.medication.name, actor="test"),
        ).to_event(event_id or str(uuid.uuid4()), recorded_at or scheduled_for or NOW)

    return _make


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
