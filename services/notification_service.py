"""
Notification Service
Fire-and-forget patient notifications sent after successful writes
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Type


logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Available notification channels"""
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"
    IN_APP = "in_app"


class NotificationType(str, Enum):
    """Types of notifications"""
    DOSE_TAKEN = "dose_taken"
    MISSED_DOSE_ALERT = "missed_dose_alert"
    STATUS_CHANGED = "status_changed"
    STREAK_MILESTONE = "streak_milestone"
    DAILY_SUMMARY = "daily_summary"


URGENCY_LEVELS = ("low", "medium", "high")


@dataclass
class NotificationRequest:
    """Notification request details"""
    patient_id: str
    notification_type: NotificationType
    data: Dict[str, Any] = field(default_factory=dict)
    channels: List[NotificationChannel] = field(default_factory=lambda: [NotificationChannel.PUSH])
    title: Optional[str] = None
    message: Optional[str] = None
    urgency: str = "low"
    recipients: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.urgency not in URGENCY_LEVELS:
            raise ValueError(f"Unknown urgency '{self.urgency}'")
        # The patient is the recipient unless caregivers are named
        if not self.recipients:
            self.recipients = [self.patient_id]


@dataclass
class NotificationResult:
    """Result of sending a notification"""
    total_sent: int
    failed_channels: List[NotificationChannel] = field(default_factory=list)
    delivered_at: Optional[datetime] = None


# Notification templates
NOTIFICATION_TEMPLATES: Dict[NotificationType, Dict[str, str]] = {
    NotificationType.DOSE_TAKEN: {
        "title": "Dose Recorded",
        "message": "{medication} recorded as taken ({timing_category}).",
    },
    NotificationType.MISSED_DOSE_ALERT: {
        "title": "Missed Dose",
        "message": "You may have missed your {medication} dose scheduled for {scheduled_time}.",
    },
    NotificationType.STATUS_CHANGED: {
        "title": "Medication Updated",
        "message": "{medication} is now {new_status}.",
    },
    NotificationType.STREAK_MILESTONE: {
        "title": "Streak Milestone",
        "message": "{threshold} days in a row with {medication}. Keep it up!",
    },
    NotificationType.DAILY_SUMMARY: {
        "title": "Daily Summary",
        "message": "{taken} of {scheduled} doses taken on {date}.",
    },
}


def render_notification(request: NotificationRequest) -> Dict[str, str]:
    """Fill the template for a request; explicit title and message win"""
    template = NOTIFICATION_TEMPLATES.get(request.notification_type, {})
    try:
        message = request.message or template.get("message", "").format(**request.data)
    except KeyError as e:
        logger.warning(f"Missing template field {e} for {request.notification_type.value}")
        message = request.message or template.get("title", "")
    return {"title": request.title or template.get("title", ""), "message": message}


class NotificationSender(ABC):
    """Delivery port; implementations live outside the scheduling core"""

    @abstractmethod
    async def send(self, request: NotificationRequest) -> NotificationResult: ...


class LoggingNotificationSender(NotificationSender):
    """Sender that writes notifications to the log instead of delivering them"""

    async def send(self, request: NotificationRequest) -> NotificationResult:
        rendered = render_notification(request)
        for channel in request.channels:
            for recipient in request.recipients:
                logger.info(
                    f"[{channel.value.upper()}][{request.urgency}] To {recipient} "
                    f"(patient {request.patient_id}): {rendered['title']} - {rendered['message']}"
                )
        return NotificationResult(
            total_sent=len(request.channels) * len(request.recipients),
            delivered_at=datetime.now(timezone.utc),
        )


class NotificationDispatcher:
    """
    Schedules sends in the background without blocking or failing the caller.

    Failures are logged and never reach the request that triggered them.
    """

    def __init__(self, sender: NotificationSender, enabled: bool = True):
        self.sender = sender
        self.enabled = enabled
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, request: NotificationRequest) -> None:
        if not self.enabled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; dropping {request.notification_type.value} notification")
            return
        task = loop.create_task(self._send_safely(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_safely(self, request: NotificationRequest) -> Optional[NotificationResult]:
        try:
            result = await self.sender.send(request)
            if result.failed_channels:
                logger.warning(
                    f"Notification {request.notification_type.value} for patient {request.patient_id} "
                    f"failed on {[c.value for c in result.failed_channels]}"
                )
            return result
        except Exception:
            logger.exception(
                f"Notification {request.notification_type.value} for patient {request.patient_id} failed"
            )
            return None

    async def drain(self) -> None:
        """Wait for every pending send; used at shutdown and in tests"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


NOTIFICATION_SENDERS: Dict[str, Type[NotificationSender]] = {
    "log": LoggingNotificationSender,
}


def build_sender(name: str) -> NotificationSender:
    """Sender registered under the configured name"""
    try:
        return NOTIFICATION_SENDERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown notification sender '{name}'; expected one of {sorted(NOTIFICATION_SENDERS)}"
        ) from None
