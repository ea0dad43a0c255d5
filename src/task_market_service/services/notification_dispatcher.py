"""Notification records for lifecycle events. Delivery is someone else's job."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

from task_market_service.core.exceptions import ServiceError
from task_market_service.logging import get_logger
from task_market_service.services.task_records import now_iso

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore


class NotificationType(str, Enum):
    """Kinds of lifecycle event a user can be notified about."""

    NEW_BID = "new_bid"
    BID_ACCEPTED = "bid_accepted"
    WORKER_ARRIVED = "worker_arrived"
    TASK_COMPLETED = "task_completed"
    REVIEW_RECEIVED = "review_received"
    TASK_CANCELLED = "task_cancelled"


class NotificationDispatcher:
    """Appends notification records and manages their read flag."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    @staticmethod
    def _to_response(row: dict[str, Any]) -> dict[str, Any]:
        return {
            "notification_id": row["notification_id"],
            "recipient_id": row["recipient_id"],
            "type": row["type"],
            "related_entity_id": row["related_entity_id"],
            "is_read": bool(row["is_read"]),
            "created_at": row["created_at"],
        }

    def emit(
        self,
        notification_type: NotificationType,
        recipient_id: str,
        related_entity_id: str,
    ) -> dict[str, Any]:
        """Append an unread notification. Joins the caller's transaction if one is open."""
        notification = {
            "notification_id": f"n-{uuid.uuid4()}",
            "recipient_id": recipient_id,
            "type": notification_type.value,
            "related_entity_id": related_entity_id,
            "is_read": 0,
            "created_at": now_iso(),
        }
        self._store.insert_notification(notification)
        self._logger.debug(
            "Notification emitted",
            extra={
                "notification_type": notification_type.value,
                "recipient_id": recipient_id,
                "related_entity_id": related_entity_id,
            },
        )
        return self._to_response(notification)

    def get(self, notification_id: str, recipient_id: str | None = None) -> dict[str, Any]:
        """
        Fetch a notification.

        When ``recipient_id`` is given, a notification owned by someone
        else is reported as NOT_FOUND.
        """
        row = self._store.get_notification(notification_id)
        if row is None or (recipient_id is not None and row["recipient_id"] != recipient_id):
            raise ServiceError("NOT_FOUND", "Notification not found", 404, {})
        return self._to_response(row)

    def list_for_user(self, recipient_id: str, *, unread_only: bool) -> list[dict[str, Any]]:
        """List a user's notifications, newest first."""
        rows = self._store.list_notifications(recipient_id, unread_only=unread_only)
        return [self._to_response(row) for row in rows]

    def unread_count(self, recipient_id: str) -> int:
        """Count a user's unread notifications."""
        return self._store.count_unread_notifications(recipient_id)

    def mark_read(self, notification_id: str, recipient_id: str | None = None) -> dict[str, Any]:
        """Mark one notification read. Marking it again is a no-op."""
        self.get(notification_id, recipient_id)
        self._store.mark_notification_read(notification_id)
        return self.get(notification_id, recipient_id)

    def mark_all_read(self, recipient_id: str) -> int:
        """Mark all of a user's notifications read and return how many changed."""
        return self._store.mark_all_notifications_read(recipient_id)

    def delete(self, notification_id: str, recipient_id: str | None = None) -> None:
        """Delete a notification."""
        self.get(notification_id, recipient_id)
        self._store.delete_notification(notification_id)
