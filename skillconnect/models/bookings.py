"""
Booking model - work in progress between a requester and a provider.
"""
from datetime import datetime
from uuid import uuid4, UUID
import enum

from sqlalchemy import Integer, DateTime, ForeignKey, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from skillconnect.lib.db import Base, utcnow


class BookingStatus(str, enum.Enum):
    """Booking status state machine: Working → Complete."""
    WORKING = "Working"
    COMPLETE = "Complete"


class Booking(Base):
    """
    Booking entity - created when an offer is accepted.
    At most one booking exists per service request.
    """
    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Relationships
    requester_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_request_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.WORKING,
        index=True,
    )

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    def is_party(self, user_id) -> bool:
        return user_id in (self.requester_id, self.provider_id)

    def other_party(self, user_id) -> UUID:
        return self.provider_id if user_id == self.requester_id else self.requester_id

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, service_request_id={self.service_request_id})>"
