"""
Database Models
SQLAlchemy ORM models for MedCommand

Each table keeps the full pydantic document in a JSON column plus the
scalar columns that queries filter on.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Date, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from datetime import datetime

from config import TableNames
from database import Base


# ==================== MODELS ====================

class MedicationCommandRecord(Base):
    """Standing medication order for a patient"""
    __tablename__ = TableNames.MEDICATION_COMMANDS

    id = Column(String(64), primary_key=True)
    patient_id = Column(String(64), nullable=False, index=True)
    medication_name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    is_prn = Column(Boolean, default=False)
    version = Column(Integer, nullable=False, default=1)
    document = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = relationship("MedicationEventRecord", back_populates="command", passive_deletes=True)

    __table_args__ = (
        Index("ix_command_patient_status", "patient_id", "status"),
    )


class MedicationEventRecord(Base):
    """Append-only medication event"""
    __tablename__ = TableNames.MEDICATION_EVENTS

    id = Column(String(64), primary_key=True)
    command_id = Column(
        String(64),
        ForeignKey(f"{TableNames.MEDICATION_COMMANDS}.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    patient_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(30), nullable=False)

    # Naive UTC
    scheduled_for = Column(DateTime, nullable=True)
    event_timestamp = Column(DateTime, nullable=False)

    is_archived = Column(Boolean, default=False, nullable=False)
    belongs_to_date = Column(Date, nullable=True)
    document = Column(JSON, nullable=False)

    command = relationship("MedicationCommandRecord", back_populates="events")

    __table_args__ = (
        Index("ix_event_patient_scheduled", "patient_id", "scheduled_for"),
        Index("ix_event_command_type", "command_id", "event_type", "event_timestamp"),
    )


class DailySummaryRecord(Base):
    """Create-once daily roll-up"""
    __tablename__ = TableNames.DAILY_SUMMARIES

    id = Column(String(64), primary_key=True)
    patient_id = Column(String(64), nullable=False, index=True)
    summary_date = Column(Date, nullable=False)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("patient_id", "summary_date", name="uq_summary_patient_date"),
    )


class PatientTimePreferenceRecord(Base):
    """Per-patient time bucket windows"""
    __tablename__ = TableNames.TIME_PREFERENCES

    patient_id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    document = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AdherenceMilestoneRecord(Base):
    """Streak milestone already reported to a patient"""
    __tablename__ = TableNames.ADHERENCE_MILESTONES

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(String(64), nullable=False, index=True)
    command_id = Column(String(64), nullable=False)
    threshold = Column(Integer, nullable=False)
    reached_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("patient_id", "command_id", "threshold", name="uq_milestone"),
    )
