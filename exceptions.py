"""
Domain Exceptions
Error taxonomy shared by the scheduling engine, services and API layer
"""

from datetime import datetime
from typing import Any, Dict, Optional


class MedicationError(Exception):
    """Base class for every error raised by the medication engine"""

    error_code = "medication_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(MedicationError):
    """Input failed validation"""

    error_code = "validation_error"

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}", {"field": field, "reason": reason})
        self.field = field
        self.reason = reason


class InvalidTransition(ValidationError):
    """Command status transition not allowed by the state machine"""

    error_code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str):
        super().__init__("status", f"cannot transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status
        self.details.update({"from": from_status, "to": to_status})


class NotFound(MedicationError):
    """Referenced entity does not exist"""

    error_code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEvent(MedicationError):
    """An equivalent event was already recorded"""

    error_code = "duplicate_event"

    def __init__(self, existing_event_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Duplicate of event {existing_event_id}",
            {"existing_event_id": existing_event_id},
        )
        self.existing_event_id = existing_event_id


class UndoWindowExpired(MedicationError):
    """Undo was requested after the undo window closed"""

    error_code = "undo_window_expired"

    def __init__(self, original_event_id: str, timeout_expired_at: datetime):
        super().__init__(
            f"Undo window for event {original_event_id} expired at {timeout_expired_at.isoformat()}",
            {
                "original_event_id": original_event_id,
                "timeout_expired_at": timeout_expired_at.isoformat(),
            },
        )
        self.original_event_id = original_event_id
        self.timeout_expired_at = timeout_expired_at


class StorageUnavailable(MedicationError):
    """Backing store failed; callers may retry"""

    error_code = "storage_unavailable"

    def __init__(self, message: str = "Storage temporarily unavailable, please retry"):
        super().__init__(message)


class TransactionFailed(StorageUnavailable):
    """A multi-write transaction was rolled back"""

    error_code = "transaction_failed"

    def __init__(self, message: str = "Transaction failed and was rolled back, please retry"):
        super().__init__(message)


class ConcurrentModification(MedicationError):
    """Optimistic version check lost against a concurrent writer"""

    error_code = "concurrent_modification"

    def __init__(self, entity: str, entity_id: str, expected_version: int):
        super().__init__(
            f"{entity} {entity_id} was modified concurrently (expected version {expected_version})",
            {"entity": entity, "id": entity_id, "expected_version": expected_version},
        )


class InvariantViolation(MedicationError):
    """Configuration or stored data breaks a domain invariant"""

    error_code = "invariant_violation"


def validation_error_from_pydantic(error) -> ValidationError:
    """Convert the first pydantic validation error into a domain ValidationError"""
    first = error.errors()[0] if error.errors() else {"loc": ("input",), "msg": str(error)}
    field = ".".join(str(p) for p in first.get("loc", ())) or "input"
    return ValidationError(field, first.get("msg", "invalid value"))
