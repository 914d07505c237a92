"""
Reviews and reviewee rating aggregates.
"""
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from skillconnect.lib.db import conflicts_as_409, utcnow
from skillconnect.lib.logging import get_logger
from skillconnect.lib.realtime import RealtimeEvent
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.notifications import NotificationType
from skillconnect.models.reviews import Review
from skillconnect.models.users import User
from skillconnect.services.notification_service import NotificationService


logger = get_logger(__name__)


def rounded_average(ratings: List[int]) -> float:
    """Mean rounded to one decimal, 0.0 for no ratings."""
    if not ratings:
        return 0.0
    return round(sum(ratings) / len(ratings), 1)


class ReviewService:
    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationService(session)

    def create_review(
        self,
        reviewer: User,
        booking_id: UUID,
        rating: int,
        comment: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Tuple[Review, List[RealtimeEvent]]:
        """
        Review the other party of a Complete booking.

        The reviewee row is locked before the review is flushed, then
        average_rating and total_reviews are recomputed from every stored
        review, so concurrent reviews of one user all land in the aggregate.
        """
        if rating < 1 or rating > 5:
            raise BadRequestException("Rating must be a number between 1 and 5")

        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        if not booking.is_party(reviewer.id):
            raise ForbiddenException("Not authorized to review this booking")
        if booking.status != BookingStatus.COMPLETE:
            raise BadRequestException("Can only review completed bookings")

        existing = self.session.execute(
            select(Review.id).where(Review.booking_id == booking.id, Review.reviewer_id == reviewer.id)
        ).first()
        if existing is not None:
            raise ConflictException("You have already reviewed this booking")

        reviewee_id = booking.other_party(reviewer.id)
        review = Review(
            id=uuid4(),
            booking_id=booking.id,
            reviewer_id=reviewer.id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment.strip() if comment else "",
            images=images or [],
            created_at=utcnow(),
        )
        reviewee = self.session.get(User, reviewee_id, with_for_update=True, populate_existing=True)
        self.session.add(review)
        with conflicts_as_409(self.session):
            self.session.flush()

        ratings = list(
            self.session.execute(
                select(Review.rating).where(Review.reviewee_id == reviewee_id)
            ).scalars().all()
        )
        reviewee.average_rating = rounded_average(ratings)
        reviewee.total_reviews = len(ratings)

        events = [self.notifications.notify(
            reviewee_id,
            "New Review",
            f"{reviewer.first_name} {reviewer.last_name} left you a {rating}-star review.",
            NotificationType.REVIEW_RECEIVED,
            {"bookingId": str(booking.id), "reviewId": str(review.id)},
        )]

        logger.info(
            "Review created",
            extra={
                "review_id": str(review.id),
                "reviewee_id": str(reviewee_id),
                "average_rating": reviewee.average_rating,
            },
        )
        return review, events

    def list_for_reviewee(
        self,
        reviewee_id: UUID,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Tuple[Review, User]], int]:
        """Newest first, paired with the reviewer; returns (page, total)."""
        total = self.session.execute(
            select(func.count()).select_from(Review).where(Review.reviewee_id == reviewee_id)
        ).scalar_one()
        rows = self.session.execute(
            select(Review, User)
            .join(User, User.id == Review.reviewer_id)
            .where(Review.reviewee_id == reviewee_id)
            .order_by(Review.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return [(review, reviewer) for review, reviewer in rows], total

    def list_by_reviewer(self, reviewer: User) -> List[Review]:
        return list(
            self.session.execute(
                select(Review)
                .where(Review.reviewer_id == reviewer.id)
                .order_by(Review.created_at.desc())
            ).scalars().all()
        )

    def stats_for(self, user_id: UUID) -> dict:
        """Review count, rounded average and per-star distribution for one user."""
        if self.session.get(User, user_id) is None:
            raise NotFoundException("User", str(user_id))
        counts = dict(
            self.session.execute(
                select(Review.rating, func.count())
                .where(Review.reviewee_id == user_id)
                .group_by(Review.rating)
            ).all()
        )
        ratings = [rating for rating, count in counts.items() for _ in range(count)]
        return {
            "total_reviews": len(ratings),
            "average_rating": rounded_average(ratings),
            "distribution": [{"rating": star, "count": counts.get(star, 0)} for star in range(1, 6)],
        }
