"""User notifications: enqueue on job completion, persist into the feed downstream."""

import logging
from typing import Any, Optional

from media_jobs.db.repository import JobRepository
from media_jobs.jobs.dispatcher import JobQueue
from media_jobs.jobs.models import NotificationMessage, QueueEntry

logger = logging.getLogger(__name__)

NOTIFICATION_QUEUE = "notification-processing"


class NotificationDispatcher:
    """Enqueue-and-forget. Delivery is never awaited by the caller."""

    def __init__(self, queue: JobQueue):
        self._queue = queue

    async def dispatch(self, message: NotificationMessage) -> str:
        entry_id = await self._queue.enqueue(message.type, message.model_dump())
        logger.info("Notification %s queued for user %s (%s)", message.type, message.user_id, entry_id)
        return entry_id


class NotificationConsumer:
    """Consumes the notification queue and inserts one feed row per message.

    A persistence error propagates so the queue's retry policy applies.
    """

    def __init__(self, repository: Optional[JobRepository]):
        self._repository = repository

    async def handle(self, entry: QueueEntry) -> Any:
        message = NotificationMessage.model_validate(entry.payload)
        logger.info("Processing notification %s for user %s with type %s", entry.id, message.user_id, message.type)

        if self._repository is None:
            logger.error("No repository configured; dropping notification %s", entry.id)
            return None

        notification_id = await self._repository.insert_notification(message)
        logger.info("Notification %s stored as row %s", entry.id, notification_id)
        return {"notification_id": notification_id}
