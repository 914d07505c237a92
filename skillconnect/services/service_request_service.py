"""
Service-request lifecycle: posting, offering, accepting, rejecting,
cancelling, expiring and the provider-facing availability query.

State machine::

    Waiting ──accept──▶ Working ──complete──▶ Complete
       │  ▲
       │  └── reject (target cleared)
       └──cancel / expire──▶ Cancelled

Methods stage every row change plus persisted notifications on the session
and return a ``TransitionResult`` with the real-time events to dispatch.
Nothing here commits: the route commits once, so a booking and its request
are written in the same transaction and ``version`` guards concurrent edits.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time as time_type, timedelta, timezone
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from skillconnect.lib.db import utcnow
from skillconnect.lib.logging import get_logger
from skillconnect.lib.metrics import get_metrics_collector
from skillconnect.lib.realtime import BOOKINGS_CHANNEL, RealtimeEvent, request_channel
from skillconnect.lib.settings import settings
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.notifications import NotificationType
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.models.users import User, UserRole
from skillconnect.services.notification_service import NotificationService


logger = get_logger(__name__)

EXPIRED_REASON = "Expired automatically by system"

TIME_FORMATS = ("%I:%M %p", "%H:%M")

SORT_FIELDS = {
    "createdAt": ServiceRequest.created_at,
    "expiresAt": ServiceRequest.expires_at,
    "budget": ServiceRequest.budget,
    "status": ServiceRequest.status,
    "typeOfWork": ServiceRequest.type_of_work,
}


def skill_matches(skill: Optional[str], type_of_work: str) -> bool:
    """Case-insensitive containment in either direction."""
    skill = (skill or "").strip().lower()
    work = type_of_work.strip().lower()
    return bool(skill) and bool(work) and (work in skill or skill in work)


@dataclass
class TransitionResult:
    """Outcome of a state change: touched rows plus events to dispatch after commit."""
    request: Optional[ServiceRequest] = None
    booking: Optional[Booking] = None
    events: List[RealtimeEvent] = field(default_factory=list)


def parse_time_of_day(value: str) -> time_type:
    """Parse "9:30 AM" or "09:30"; raises BadRequestException otherwise."""
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    raise BadRequestException(
        "Time must look like 'h:mm AM/PM' or 'HH:MM'",
        details={"time": value},
    )


def check_version(entity, expected_version: Optional[int]) -> None:
    """Reject a write whose If-Match version no longer matches the row."""
    if expected_version is not None and entity.version != expected_version:
        raise ConflictException(
            "The resource was modified by another request, please refresh",
            details={"current_version": entity.version, "expected_version": expected_version},
        )


def request_updated_event(
    request: ServiceRequest,
    action: str,
    former_party: Optional[UUID] = None,
    **extra,
) -> RealtimeEvent:
    """
    Request update addressed to the request's current parties.

    ``former_party`` is a user who stopped being a party in this very
    transition (a provider who just rejected) and still hears about it.
    """
    payload = {"requestId": str(request.id), "action": action}
    payload.update(extra)
    parties = {request.requester_id, request.target_provider_id, request.service_provider_id, former_party}
    return RealtimeEvent(
        channel=request_channel(request.id),
        event="service-request-updated",
        payload=payload,
        audience=frozenset(str(p) for p in parties if p is not None),
    )


def booking_updated_event(booking: Booking, action: str) -> RealtimeEvent:
    return RealtimeEvent(
        channel=BOOKINGS_CHANNEL,
        event="booking-updated",
        payload={"bookingId": str(booking.id), "action": action},
        audience=frozenset({str(booking.requester_id), str(booking.provider_id)}),
    )


class ServiceRequestService:
    """Service-request state transitions and queries."""

    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationService(session)
        self.metrics = get_metrics_collector()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID) -> ServiceRequest:
        request = self.session.get(ServiceRequest, request_id)
        if request is None:
            raise NotFoundException("Service request", str(request_id))
        return request

    def get_visible_request(self, actor: User, request_id: UUID) -> ServiceRequest:
        """Requester, targeted provider, assigned provider or an admin."""
        request = self.get_request(request_id)
        if not actor.is_admin and not request.is_party(actor.id):
            raise ForbiddenException("Not authorized to view this service request")
        return request

    def list_for_requester(self, requester: User) -> List[ServiceRequest]:
        return list(
            self.session.execute(
                select(ServiceRequest)
                .where(ServiceRequest.requester_id == requester.id)
                .order_by(ServiceRequest.created_at.desc())
            ).scalars().all()
        )

    def _get_provider(self, provider_id: UUID) -> User:
        provider = self.session.get(User, provider_id)
        if provider is None:
            raise NotFoundException("Service provider", str(provider_id))
        if provider.role != UserRole.SERVICE_PROVIDER or provider.banned:
            raise BadRequestException("Target user is not an active service provider")
        return provider

    # ------------------------------------------------------------------
    # Posting and offering
    # ------------------------------------------------------------------

    def post_request(
        self,
        requester: User,
        *,
        name: str,
        address: str,
        phone: str,
        type_of_work: str,
        time: str,
        preferred_date: Optional[date] = None,
        budget: Optional[float] = None,
        notes: Optional[str] = None,
        target_provider_id: Optional[UUID] = None,
    ) -> TransitionResult:
        """
        Create a Waiting request.

        Expiry is the preferred date at the given time of day, or
        ``request_ttl_hours`` from now when no date is given. Providers whose
        skills match the type of work and the requester are notified; a
        targeted provider also receives the offer.
        """
        if requester.role not in (UserRole.COMMUNITY_MEMBER, UserRole.ADMIN):
            raise ForbiddenException("Only community members can post service requests")

        now = utcnow()
        time_of_day = parse_time_of_day(time)
        if preferred_date is not None:
            expires_at = datetime.combine(preferred_date, time_of_day, tzinfo=timezone.utc)
            if expires_at <= now:
                raise BadRequestException("Preferred date and time must be in the future")
        else:
            expires_at = now + timedelta(hours=settings.request_ttl_hours)

        target = self._get_provider(target_provider_id) if target_provider_id else None

        request = ServiceRequest(
            id=uuid4(),
            requester_id=requester.id,
            name=name,
            address=address,
            phone=phone,
            type_of_work=type_of_work,
            time=time,
            preferred_date=preferred_date,
            budget=budget,
            notes=notes,
            target_provider_id=target.id if target else None,
            status=ServiceRequestStatus.WAITING,
            expires_at=expires_at,
            created_at=now,
        )
        self.session.add(request)

        result = TransitionResult(request=request)
        meta = {"serviceRequestId": str(request.id)}

        if target is not None:
            result.events.append(self.notifications.notify(
                target.id,
                "New Service Offer",
                f"You have received an offer for: {type_of_work}",
                NotificationType.SERVICE_OFFER,
                meta,
            ))
        else:
            for provider_id in self._matching_provider_ids(type_of_work, exclude=requester.id):
                result.events.append(self.notifications.notify(
                    provider_id,
                    "New Service Request",
                    "Someone has posted a request that matches your service and skills.",
                    NotificationType.SERVICE_REQUEST,
                    meta,
                ))

        result.events.append(self.notifications.notify(
            requester.id,
            "Service Request Posted",
            f'Your "{type_of_work}" request has been posted successfully.',
            NotificationType.SERVICE_REQUEST_POSTED,
            meta,
        ))

        self.metrics.increment_transitions("service_request", "posted")
        logger.info(
            "Service request posted",
            extra={"request_id": str(request.id), "requester_id": str(requester.id)},
        )
        return result

    def _matching_provider_ids(self, type_of_work: str, exclude: UUID) -> List[UUID]:
        """Active providers with a skill containing the type of work, case-insensitive."""
        providers = self.session.execute(
            select(User.id, User.skills).where(
                User.role == UserRole.SERVICE_PROVIDER,
                User.banned.is_(False),
                User.id != exclude,
            )
        ).all()
        return [
            provider_id
            for provider_id, skills in providers
            if any(skill_matches(skill, type_of_work) for skill in skills or [])
        ]

    def offer_to_provider(
        self,
        requester: User,
        request_id: UUID,
        provider_id: UUID,
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        """Target a Waiting request at one provider; the status stays Waiting."""
        request = self.get_request(request_id)
        if request.requester_id != requester.id:
            raise ForbiddenException("Not authorized to offer this request")
        if request.status != ServiceRequestStatus.WAITING:
            raise ConflictException(
                "Only waiting requests can be offered",
                details={"status": request.status.value},
            )
        check_version(request, expected_version)
        provider = self._get_provider(provider_id)

        request.target_provider_id = provider.id

        result = TransitionResult(request=request)
        result.events.append(self.notifications.notify(
            provider.id,
            "New Service Offer",
            f"You have received an offer for: {request.type_of_work}",
            NotificationType.SERVICE_OFFER,
            {"serviceRequestId": str(request.id)},
        ))
        result.events.append(request_updated_event(request, "offered", providerId=str(provider.id)))

        self.metrics.increment_transitions("service_request", "offered")
        return result

    # ------------------------------------------------------------------
    # Provider decisions
    # ------------------------------------------------------------------

    def _get_offer_for(self, provider: User, request_id: UUID, verb: str) -> ServiceRequest:
        request = self.get_request(request_id)
        if request.target_provider_id != provider.id:
            raise ForbiddenException(f"Not authorized to {verb} this offer")
        if request.status != ServiceRequestStatus.WAITING:
            raise ConflictException(
                "This offer is no longer waiting for a decision",
                details={"status": request.status.value},
            )
        return request

    def accept_offer(
        self,
        provider: User,
        request_id: UUID,
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        """
        Accept an offer addressed to ``provider``.

        Creates the Working booking and moves the request to Working in the
        same unit of work. The unique booking-per-request constraint and the
        request ``version`` turn a concurrent second accept into a conflict.
        """
        request = self._get_offer_for(provider, request_id, "accept")
        check_version(request, expected_version)

        now = utcnow()
        booking = Booking(
            id=uuid4(),
            requester_id=request.requester_id,
            provider_id=provider.id,
            service_request_id=request.id,
            status=BookingStatus.WORKING,
            created_at=now,
        )
        self.session.add(booking)

        request.status = ServiceRequestStatus.WORKING
        request.service_provider_id = provider.id
        request.eta = now + timedelta(minutes=settings.offer_eta_minutes)

        result = TransitionResult(request=request, booking=booking)
        result.events.append(self.notifications.notify(
            request.requester_id,
            "Offer Accepted",
            f"{provider.first_name} {provider.last_name} accepted your request for {request.type_of_work}.",
            NotificationType.OFFER_ACCEPTED,
            {"serviceRequestId": str(request.id), "bookingId": str(booking.id)},
        ))
        result.events.append(request_updated_event(request, "offer-accepted"))
        result.events.append(booking_updated_event(booking, "created"))

        self.metrics.increment_transitions("service_request", "offer-accepted")
        logger.info(
            "Offer accepted",
            extra={
                "request_id": str(request.id),
                "booking_id": str(booking.id),
                "provider_id": str(provider.id),
            },
        )
        return result

    def reject_offer(
        self,
        provider: User,
        request_id: UUID,
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        """Decline an offer; the request returns to the open pool."""
        request = self._get_offer_for(provider, request_id, "reject")
        check_version(request, expected_version)

        request.status = ServiceRequestStatus.WAITING
        request.target_provider_id = None

        result = TransitionResult(request=request)
        result.events.append(self.notifications.notify(
            request.requester_id,
            "Offer Rejected",
            f"{provider.first_name} {provider.last_name} declined your request for {request.type_of_work}.",
            NotificationType.OFFER_REJECTED,
            {"serviceRequestId": str(request.id)},
        ))
        result.events.append(request_updated_event(request, "offer-rejected", former_party=provider.id))

        self.metrics.increment_transitions("service_request", "offer-rejected")
        logger.info(
            "Offer rejected",
            extra={"request_id": str(request.id), "provider_id": str(provider.id)},
        )
        return result

    # ------------------------------------------------------------------
    # Cancellation and expiry
    # ------------------------------------------------------------------

    def cancel_request(
        self,
        actor: User,
        request_id: UUID,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        request = self.get_request(request_id)
        if request.requester_id != actor.id and not actor.is_admin:
            raise ForbiddenException("Not authorized to cancel this request")
        if request.status != ServiceRequestStatus.WAITING:
            raise ConflictException(
                "Only waiting requests can be cancelled",
                details={"status": request.status.value},
            )

        previous_target = request.target_provider_id
        request.status = ServiceRequestStatus.CANCELLED
        request.cancellation_reason = reason or ""
        request.target_provider_id = None

        result = TransitionResult(request=request)
        if previous_target is not None:
            result.events.append(self.notifications.notify(
                previous_target,
                "Request Cancelled",
                f"The {request.type_of_work} request offered to you was cancelled.",
                NotificationType.REQUEST_CANCELLED,
                {"serviceRequestId": str(request.id)},
            ))
        if actor.id != request.requester_id:
            result.events.append(self.notifications.notify(
                request.requester_id,
                "Request Cancelled",
                f"Your {request.type_of_work} request was cancelled by an administrator.",
                NotificationType.REQUEST_CANCELLED,
                {"serviceRequestId": str(request.id)},
            ))
        result.events.append(request_updated_event(request, "cancelled", former_party=previous_target))

        self.metrics.increment_transitions("service_request", "cancelled")
        return result

    def expire_stale_requests(self) -> Tuple[int, List[RealtimeEvent]]:
        """
        Cancel every Waiting request whose expiry has passed.

        Returns the number expired and the events to dispatch once the
        caller has committed.
        """
        now = utcnow()
        stale = self.session.execute(
            select(ServiceRequest).where(
                ServiceRequest.status == ServiceRequestStatus.WAITING,
                ServiceRequest.expires_at <= now,
            )
        ).scalars().all()

        events: List[RealtimeEvent] = []
        for request in stale:
            previous_target = request.target_provider_id
            request.status = ServiceRequestStatus.CANCELLED
            request.cancellation_reason = EXPIRED_REASON
            request.target_provider_id = None
            events.append(self.notifications.notify(
                request.requester_id,
                "Service Request Expired",
                f"Your {request.type_of_work} request expired before a provider accepted it.",
                NotificationType.SERVICE_EXPIRED,
                {"serviceRequestId": str(request.id)},
            ))
            events.append(request_updated_event(request, "expired", former_party=previous_target))

        if stale:
            self.metrics.increment_transitions("service_request", "expired", amount=len(stale))
            logger.info("Expired stale service requests", extra={"expired_count": len(stale)})
        return len(stale), events

    # ------------------------------------------------------------------
    # Provider availability
    # ------------------------------------------------------------------

    def available_for_provider(
        self,
        provider: User,
        skills: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Tuple[ServiceRequest, User]], int]:
        """
        Waiting, unexpired requests that are open or targeted at ``provider``,
        newest first, paired with their requester; returns (page, total).
        """
        if provider.role != UserRole.SERVICE_PROVIDER:
            raise ForbiddenException("Only service providers can view available requests")

        conditions = [
            ServiceRequest.status == ServiceRequestStatus.WAITING,
            ServiceRequest.expires_at > utcnow(),
            or_(
                ServiceRequest.target_provider_id == provider.id,
                ServiceRequest.target_provider_id.is_(None),
            ),
        ]
        if skills:
            terms = [term.strip().lower() for term in skills.split(",") if term.strip()]
            if terms:
                conditions.append(
                    or_(*[func.lower(ServiceRequest.type_of_work).contains(term) for term in terms])
                )

        total = self.session.execute(
            select(func.count()).select_from(ServiceRequest).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(ServiceRequest, User)
            .join(User, User.id == ServiceRequest.requester_id)
            .where(*conditions)
            .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return [(request, requester) for request, requester in rows], total

    # ------------------------------------------------------------------
    # Admin request log
    # ------------------------------------------------------------------

    def search(
        self,
        page: int = 1,
        limit: int = 10,
        skill: Optional[str] = None,
        status: Optional[ServiceRequestStatus] = None,
        sort: str = "createdAt:desc",
    ) -> Tuple[List[Tuple[ServiceRequest, User]], int]:
        """
        Paginated request log for admins.

        ``sort`` is ``field:order`` where field is one of SORT_FIELDS and
        order is asc or desc.
        """
        field_name, _, order = sort.partition(":")
        column = SORT_FIELDS.get(field_name)
        if column is None or order.lower() not in ("", "asc", "desc"):
            raise BadRequestException(
                "Invalid sort, expected field:order",
                details={"sort": sort, "fields": sorted(SORT_FIELDS)},
            )

        conditions = []
        if skill:
            conditions.append(func.lower(ServiceRequest.type_of_work).contains(skill.strip().lower()))
        if status is not None:
            conditions.append(ServiceRequest.status == status)

        total = self.session.execute(
            select(func.count()).select_from(ServiceRequest).where(*conditions)
        ).scalar_one()

        ordering = column.asc() if order.lower() == "asc" else column.desc()
        rows = self.session.execute(
            select(ServiceRequest, User)
            .join(User, User.id == ServiceRequest.requester_id)
            .where(*conditions)
            .order_by(ordering, ServiceRequest.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return [(request, requester) for request, requester in rows], total
