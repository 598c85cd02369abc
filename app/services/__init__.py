"""Service layer package."""

from app.services.cohorts import CohortResolver
from app.services.due_tasks import DueTaskProcessor
from app.services.notification_service import DispatchResult, NotificationService
from app.services.push_transport import PushPayload, PushTransport
from app.services.task_scheduler import TaskScheduler

__all__ = [
    "CohortResolver",
    "DispatchResult",
    "DueTaskProcessor",
    "NotificationService",
    "PushPayload",
    "PushTransport",
    "TaskScheduler",
]
