"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from skillconnect.models.users import User, UserRole, EmploymentStatus
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.reviews import Review
from skillconnect.models.notifications import Notification, NotificationType
from skillconnect.models.idempotency import IdempotencyRecord

__all__ = [
    "User",
    "UserRole",
    "EmploymentStatus",
    "ServiceRequest",
    "ServiceRequestStatus",
    "Booking",
    "BookingStatus",
    "Review",
    "Notification",
    "NotificationType",
    "IdempotencyRecord",
]
