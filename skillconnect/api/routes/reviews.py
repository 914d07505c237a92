"""
Review routes.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy.orm import Session

from skillconnect.api.dependencies import get_db, get_idempotency_key, get_verified_user
from skillconnect.api.responses import commit_and_respond, replay_response
from skillconnect.api.schemas import CamelModel, ReviewOut
from skillconnect.models.users import User
from skillconnect.services.review_service import ReviewService


router = APIRouter(prefix="/review", tags=["Reviews"])


class CreateReviewRequest(CamelModel):
    booking_id: UUID
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)
    images: List[str] = Field(default_factory=list, max_length=5)


class ReviewResponse(CamelModel):
    success: bool = True
    message: str = "Review created successfully"
    review: ReviewOut


class ReviewWithReviewer(ReviewOut):
    reviewer_name: str
    reviewer_profile_pic: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int


class UserReviewsResponse(CamelModel):
    success: bool = True
    reviews: List[ReviewWithReviewer]
    pagination: Pagination


class MyReviewsResponse(CamelModel):
    success: bool = True
    count: int
    reviews: List[ReviewOut]


class RatingBucket(CamelModel):
    rating: int
    count: int


class ReviewStats(CamelModel):
    total_reviews: int
    average_rating: float
    distribution: List[RatingBucket]


class ReviewStatsResponse(CamelModel):
    success: bool = True
    stats: ReviewStats


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: CreateReviewRequest,
    user: User = Depends(get_verified_user),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    """
    Review the other party of a completed booking.

    Errors:
    - 400 if the booking is not Complete
    - 403 if the caller is not a party to the booking
    - 409 if the caller already reviewed it
    """
    operation = f"review:{payload.booking_id}"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    review, events = ReviewService(db).create_review(
        user, payload.booking_id, payload.rating, payload.comment, payload.images
    )
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_201_CREATED,
        lambda: ReviewResponse(review=ReviewOut.model_validate(review)),
        events,
    )


@router.get("/mine", response_model=MyReviewsResponse)
def my_reviews(
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> MyReviewsResponse:
    reviews = ReviewService(db).list_by_reviewer(user)
    return MyReviewsResponse(count=len(reviews), reviews=[ReviewOut.model_validate(r) for r in reviews])


@router.get("/user/{user_id}", response_model=UserReviewsResponse)
def user_reviews(
    user_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> UserReviewsResponse:
    """Public list of reviews received by a user, newest first."""
    rows, total = ReviewService(db).list_for_reviewee(user_id, page=page, limit=limit)
    reviews = [
        ReviewWithReviewer(
            **ReviewOut.model_validate(review).model_dump(),
            reviewer_name=f"{reviewer.first_name} {reviewer.last_name}",
            reviewer_profile_pic=reviewer.profile_pic,
        )
        for review, reviewer in rows
    ]
    return UserReviewsResponse(
        reviews=reviews,
        pagination=Pagination(
            page=page,
            limit=limit,
            total_count=total,
            total_pages=(total + limit - 1) // limit,
        ),
    )


@router.get("/stats/{user_id}", response_model=ReviewStatsResponse)
def user_review_stats(
    user_id: UUID,
    db: Session = Depends(get_db),
) -> ReviewStatsResponse:
    """Public rating summary: count, average and how many reviews per star."""
    stats = ReviewService(db).stats_for(user_id)
    return ReviewStatsResponse(stats=ReviewStats(**stats))
