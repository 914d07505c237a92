"""
Notification model - durable per-user messages clients reconcile against.
"""
from datetime import datetime
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Boolean, DateTime, ForeignKey, JSON, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from skillconnect.lib.db import Base, utcnow


class NotificationType(str, enum.Enum):
    """Notification type enumeration."""
    SERVICE_REQUEST = "service_request"
    SERVICE_REQUEST_POSTED = "service_request_posted"
    SERVICE_OFFER = "service_offer"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    BOOKING_COMPLETED = "booking_completed"
    REQUEST_CANCELLED = "request_cancelled"
    SERVICE_EXPIRED = "service_expired"
    REVIEW_RECEIVED = "review_received"
    ACCOUNT_VERIFIED = "account_verified"
    ACCOUNT_BANNED = "account_banned"
    SYSTEM_UPDATE = "system_update"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, name="notification_type"),
        nullable=False,
        default=NotificationType.SYSTEM_UPDATE,
    )

    # Related ids, e.g. {"serviceRequestId": ..., "bookingId": ...}
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type}, read={self.read})>"
