"""
MedCommand Test Suite
=====================

This package contains all tests for the MedCommand scheduling and adherence backend.

Test Structure:
- test_tools/: Pure scheduling, bucketing, scoring and adherence algorithms
- test_services/: Services against an in-memory SQLite repository
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_tools/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "api"
"""

from datetime import datetime, timezone

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"
PATIENT_ID = "patient-001"
API = "/api/v1"

# Tuesday, 14:00 UTC
NOW = datetime(2024, 3, 12, 14, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: int = 12) -> datetime:
    """UTC instant in March 2024"""
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


__all__ = [
    "TEST_DATABASE_URL",
    "PATIENT_ID",
    "API",
    "NOW",
    "at",
]
