"""
ServiceRequest model - work posted by a community member.
"""
from datetime import date as date_type, datetime
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, Numeric, Date, DateTime, ForeignKey, Uuid, Enum as SQLEnum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from skillconnect.lib.db import Base, utcnow


class ServiceRequestStatus(str, enum.Enum):
    """
    Request state machine.
    Waiting → Working (offer accepted) → Complete; Waiting → Cancelled.
    """
    WAITING = "Waiting"
    WORKING = "Working"
    COMPLETE = "Complete"
    CANCELLED = "Cancelled"


class ServiceRequest(Base):
    """
    ServiceRequest entity.

    A request with ``target_provider_id`` set is an offer awaiting that
    provider's decision. ``service_provider_id`` is only set once the offer
    is accepted, so it is NULL exactly while the request is Waiting or
    Cancelled.
    """
    __tablename__ = "service_requests"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Parties
    requester_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_provider_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    service_provider_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Details
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    type_of_work: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    budget: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    preferred_date: Mapped[Optional[date_type]] = mapped_column(Date, nullable=True)
    time: Mapped[str] = mapped_column(String(20), nullable=False)

    # State
    status: Mapped[ServiceRequestStatus] = mapped_column(
        SQLEnum(ServiceRequestStatus, name="service_request_status"),
        nullable=False,
        default=ServiceRequestStatus.WAITING,
        index=True,
    )
    eta: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "(status IN ('WAITING', 'CANCELLED') AND service_provider_id IS NULL) "
            "OR (status IN ('WORKING', 'COMPLETE') AND service_provider_id IS NOT NULL)",
            name="service_request_provider_matches_status",
        ),
        CheckConstraint(
            "budget IS NULL OR budget >= 0",
            name="service_request_budget_positive",
        ),
    )

    def is_party(self, user_id) -> bool:
        """Requester, targeted provider or assigned provider."""
        return user_id in (self.requester_id, self.target_provider_id, self.service_provider_id)

    def __repr__(self) -> str:
        return f"<ServiceRequest(id={self.id}, status={self.status}, requester_id={self.requester_id})>"
