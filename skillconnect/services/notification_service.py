"""
Notification service for persisted in-app notifications.

Every notification is written in the caller's transaction and paired with a
``new-notification`` real-time event on the recipient's private channel. The
event is only dispatched after the caller commits, so a rolled-back
transition never reaches a connected client.
"""
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from skillconnect.lib.db import utcnow
from skillconnect.lib.logging import get_logger
from skillconnect.lib.metrics import get_metrics_collector
from skillconnect.lib.realtime import RealtimeEvent, user_channel
from skillconnect.models.notifications import Notification, NotificationType


logger = get_logger(__name__)


def serialize_notification(notification: Notification) -> dict:
    """Wire shape shared by the REST listing and the real-time event."""
    return {
        "id": str(notification.id),
        "title": notification.title,
        "message": notification.message,
        "type": notification.type.value,
        "meta": notification.meta or {},
        "read": notification.read,
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationService:
    """
    Creates and manages user notifications.

    Does not commit; the owning route commits once per request.
    """

    def __init__(self, session: Session):
        self.session = session
        self.metrics = get_metrics_collector()

    def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.SYSTEM_UPDATE,
        meta: Optional[dict] = None,
    ) -> RealtimeEvent:
        """
        Stage a notification row and return its real-time event.

        Args:
            user_id: Recipient
            title: Short title, e.g. "Offer Accepted"
            message: Human readable body
            notification_type: Category used by clients for icons and routing
            meta: Related ids (serviceRequestId, bookingId, ...)

        Returns:
            Event to dispatch after commit
        """
        notification = Notification(
            id=uuid4(),
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
            meta=meta or {},
            read=False,
            created_at=utcnow(),
        )
        self.session.add(notification)
        self.metrics.increment_notifications(notification_type.value)

        logger.info(
            "Notification staged",
            extra={
                "notification_id": str(notification.id),
                "user_id": str(user_id),
                "notification_type": notification_type.value,
            },
        )

        return RealtimeEvent(
            channel=user_channel(user_id),
            event="new-notification",
            payload=serialize_notification(notification),
        )

    def list_for_user(
        self,
        user_id: UUID,
        unread_only: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Notification], int]:
        """Newest first; returns (page of notifications, total matching)."""
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.read.is_(False))

        total = self.session.execute(
            select(func.count()).select_from(Notification).where(*conditions)
        ).scalar_one()

        notifications = self.session.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return list(notifications), total

    def unread_count(self, user_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        ).scalar_one()

    def mark_read(self, user_id: UUID, notification_id: UUID) -> Optional[Notification]:
        """Mark one of the user's notifications read; None if it is not theirs."""
        notification = self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        if not notification.read:
            notification.read = True
            notification.read_at = utcnow()
        return notification

    def mark_all_read(self, user_id: UUID) -> int:
        """Returns the number of notifications flipped to read."""
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=utcnow())
        )
        return result.rowcount or 0
