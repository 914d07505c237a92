"""
Row builders and auth helpers shared by the test modules.
"""
from datetime import date, timedelta
from typing import Optional, Tuple
from uuid import uuid4

from skillconnect.lib.db import utcnow
from skillconnect.lib.jwt import create_access_token
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.models.users import EmploymentStatus, User, UserRole
from skillconnect.services.auth_service import hash_password


TEST_PASSWORD = "password123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def build_user(
    role: UserRole = UserRole.COMMUNITY_MEMBER,
    *,
    verified: bool = True,
    banned: bool = False,
    skills: Optional[list] = None,
    first_name: str = "Test",
    last_name: str = "User",
    birthdate: Optional[date] = None,
    employed: Optional[EmploymentStatus] = None,
    created_at=None,
) -> User:
    suffix = uuid4().hex[:8]
    if skills is None:
        skills = ["Plumbing"] if role == UserRole.SERVICE_PROVIDER else []
    now = created_at or utcnow()
    return User(
        id=uuid4(),
        email=f"user-{suffix}@example.com",
        username=f"user_{suffix}",
        password_hash=TEST_PASSWORD_HASH,
        first_name=first_name,
        last_name=last_name,
        phone="555-0100",
        address="12 Main St",
        birthdate=birthdate,
        employed=employed,
        role=role,
        skills=skills,
        average_rating=0.0,
        total_reviews=0,
        verified=verified,
        banned=banned,
        created_at=now,
        updated_at=now,
    )


def build_request(
    requester: User,
    *,
    type_of_work: str = "Plumbing",
    status: ServiceRequestStatus = ServiceRequestStatus.WAITING,
    target_provider: Optional[User] = None,
    service_provider: Optional[User] = None,
    expires_in: timedelta = timedelta(hours=24),
    budget: Optional[float] = 100.0,
    created_at=None,
) -> ServiceRequest:
    now = created_at or utcnow()
    return ServiceRequest(
        id=uuid4(),
        requester_id=requester.id,
        target_provider_id=target_provider.id if target_provider else None,
        service_provider_id=service_provider.id if service_provider else None,
        name=f"{requester.first_name} {requester.last_name}",
        address="12 Main St",
        phone="555-0100",
        type_of_work=type_of_work,
        budget=budget,
        time="9:30 AM",
        status=status,
        expires_at=utcnow() + expires_in,
        created_at=now,
    )


def build_accepted(
    requester: User,
    provider: User,
    *,
    completed: bool = False,
    type_of_work: str = "Plumbing",
) -> Tuple[ServiceRequest, Booking]:
    """A request already accepted by ``provider`` and its booking."""
    request = build_request(
        requester,
        type_of_work=type_of_work,
        status=ServiceRequestStatus.COMPLETE if completed else ServiceRequestStatus.WORKING,
        target_provider=provider,
        service_provider=provider,
    )
    booking = Booking(
        id=uuid4(),
        requester_id=requester.id,
        provider_id=provider.id,
        service_request_id=request.id,
        status=BookingStatus.COMPLETE if completed else BookingStatus.WORKING,
        created_at=utcnow(),
    )
    return request, booking


def auth_headers(user: User, **extra) -> dict:
    """Bearer header for ``user`` plus any extra headers (dashes for underscores)."""
    token = create_access_token(user_id=str(user.id), role=user.role.value)
    headers = {"Authorization": f"Bearer {token}"}
    headers.update({name.replace("_", "-"): value for name, value in extra.items()})
    return headers
