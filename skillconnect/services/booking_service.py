"""
Booking lifecycle: completion plus party-scoped reads.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import ForbiddenException, NotFoundException
from skillconnect.lib.logging import get_logger
from skillconnect.lib.metrics import get_metrics_collector
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.notifications import NotificationType
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.models.users import User
from skillconnect.services.notification_service import NotificationService
from skillconnect.services.service_request_service import (
    TransitionResult,
    booking_updated_event,
    check_version,
    request_updated_event,
)


logger = get_logger(__name__)


class BookingService:
    """Bookings are only visible to, and completable by, their two parties."""

    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationService(session)
        self.metrics = get_metrics_collector()

    def get_booking(self, actor: User, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        if not booking.is_party(actor.id) and not actor.is_admin:
            raise ForbiddenException("Not authorized to access this booking")
        return booking

    def list_for_user(self, user: User, status: Optional[BookingStatus] = None) -> List[Booking]:
        query = (
            select(Booking)
            .where(or_(Booking.requester_id == user.id, Booking.provider_id == user.id))
            .order_by(Booking.created_at.desc())
        )
        if status is not None:
            query = query.where(Booking.status == status)
        return list(self.session.execute(query).scalars().all())

    def complete_booking(
        self,
        actor: User,
        booking_id: UUID,
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        """
        Mark a booking and its request Complete.

        A party completing an already Complete booking gets the booking back
        with no second notification or event.
        """
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        if not booking.is_party(actor.id):
            raise ForbiddenException("Not authorized to complete this booking")

        request = self.session.get(ServiceRequest, booking.service_request_id)
        result = TransitionResult(request=request, booking=booking)

        if booking.status == BookingStatus.COMPLETE:
            logger.info(
                "Booking already complete",
                extra={"booking_id": str(booking.id), "actor_id": str(actor.id)},
            )
            return result

        check_version(booking, expected_version)

        booking.status = BookingStatus.COMPLETE
        if request is not None:
            request.status = ServiceRequestStatus.COMPLETE

        other_party = booking.other_party(actor.id)
        work = request.type_of_work if request is not None else "service"
        result.events.append(self.notifications.notify(
            other_party,
            "Booking Completed",
            f"{actor.first_name} {actor.last_name} marked the {work} booking as complete.",
            NotificationType.BOOKING_COMPLETED,
            {"bookingId": str(booking.id), "serviceRequestId": str(booking.service_request_id)},
        ))
        result.events.append(booking_updated_event(booking, "completed"))
        if request is not None:
            result.events.append(request_updated_event(request, "completed"))

        self.metrics.increment_transitions("booking", "completed")
        logger.info(
            "Booking completed",
            extra={"booking_id": str(booking.id), "actor_id": str(actor.id)},
        )
        return result
