"""
Pydantic response schemas shared by the route modules.

Fields are snake_case in Python and camelCase on the wire, matching what the
web and mobile clients read (``typeOfWork``, ``expiresAt``, ...).
"""
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from skillconnect.models.bookings import BookingStatus
from skillconnect.models.notifications import NotificationType
from skillconnect.models.service_requests import ServiceRequestStatus
from skillconnect.models.users import EmploymentStatus, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class UserPublic(CamelModel):
    """Contact-safe fields shown to the other party of a request."""
    id: UUID
    first_name: str
    last_name: str
    username: str
    phone: Optional[str] = None
    profile_pic: Optional[str] = None


class UserProfile(UserPublic):
    email: str
    address: Optional[str] = None
    birthdate: Optional[date] = None
    employed: Optional[EmploymentStatus] = None
    role: UserRole
    skills: List[str] = []
    average_rating: float = 0.0
    total_reviews: int = 0
    verified: bool = False
    banned: bool = False
    created_at: datetime


class ServiceRequestOut(CamelModel):
    id: UUID
    requester_id: UUID
    name: str
    address: str
    phone: str
    type_of_work: str
    budget: Optional[float] = None
    notes: Optional[str] = None
    preferred_date: Optional[date] = None
    time: str
    status: ServiceRequestStatus
    target_provider_id: Optional[UUID] = None
    service_provider_id: Optional[UUID] = None
    eta: Optional[datetime] = None
    expires_at: datetime
    cancellation_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class AvailableRequestOut(CamelModel):
    """
    A request as a provider browsing for work sees it.

    Carries no provider ids; ``targeted`` tells the caller whether the
    request was offered to them specifically.
    """
    id: UUID
    name: str
    address: str
    phone: str
    type_of_work: str
    budget: Optional[float] = None
    notes: Optional[str] = None
    preferred_date: Optional[date] = None
    time: str
    status: ServiceRequestStatus
    expires_at: datetime
    version: int
    created_at: datetime
    targeted: bool
    requester: UserPublic


class BookingOut(CamelModel):
    id: UUID
    requester_id: UUID
    provider_id: UUID
    service_request_id: UUID
    status: BookingStatus
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class NotificationOut(CamelModel):
    id: UUID
    title: str
    message: str
    type: NotificationType
    meta: dict = {}
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class ReviewOut(CamelModel):
    id: UUID
    booking_id: UUID
    reviewer_id: UUID
    reviewee_id: UUID
    rating: int
    comment: Optional[str] = None
    images: List[str] = []
    created_at: datetime


class MessageResponse(CamelModel):
    success: bool = True
    message: str
