"""
User model - community members, service providers and admins.
"""
from datetime import date as date_type, datetime
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Boolean, Float, Integer, Date, DateTime, JSON, Uuid, Enum as SQLEnum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from skillconnect.lib.db import Base, utcnow


class UserRole(str, enum.Enum):
    """Marketplace role."""
    SERVICE_PROVIDER = "Service Provider"
    COMMUNITY_MEMBER = "Community Member"
    ADMIN = "Admin"


class EmploymentStatus(str, enum.Enum):
    """Self-reported employment, used by the demographics report."""
    EMPLOYED = "employed"
    UNEMPLOYED = "unemployed"


class User(Base):
    """
    User entity - every account in the marketplace.
    Providers carry 1..3 skills; ratings are recalculated from reviews.
    Accounts are never hard-deleted, admins ban them instead.
    """
    __tablename__ = "users"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Identity
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    birthdate: Mapped[Optional[date_type]] = mapped_column(Date, nullable=True)
    employed: Mapped[Optional[EmploymentStatus]] = mapped_column(
        SQLEnum(EmploymentStatus, name="employment_status"),
        nullable=True,
    )
    profile_pic: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role"),
        nullable=False,
        index=True,
    )
    skills: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # Reputation
    average_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Moderation
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

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

    __table_args__ = (
        CheckConstraint(
            "average_rating >= 0 AND average_rating <= 5",
            name="user_rating_range",
        ),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_provider(self) -> bool:
        return self.role == UserRole.SERVICE_PROVIDER

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"
