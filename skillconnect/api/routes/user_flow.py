"""
User-flow routes under ``/user``: service requests, offers, bookings.

Transitions (accept, reject, complete, ...) accept two optional headers:
- ``Idempotency-Key``: a repeated key returns the first response unchanged
- ``If-Match``: the row version the client last saw; a mismatch is a 409
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import Field
from sqlalchemy.orm import Session

from skillconnect.api.dependencies import (
    get_db,
    get_expected_version,
    get_idempotency_key,
    get_verified_user,
)
from skillconnect.api.responses import commit_and_respond, replay_response
from skillconnect.api.schemas import (
    AvailableRequestOut,
    BookingOut,
    CamelModel,
    MessageResponse,
    ServiceRequestOut,
    UserPublic,
)
from skillconnect.models.bookings import BookingStatus
from skillconnect.models.users import User
from skillconnect.services.booking_service import BookingService
from skillconnect.services.recommendation_service import RecommendationService
from skillconnect.services.service_request_service import ServiceRequestService


router = APIRouter(prefix="/user", tags=["User flow"])


# Request/Response Models
class PostServiceRequest(CamelModel):
    """Payload for posting a new service request."""
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=20)
    type_of_work: str = Field(..., min_length=1, max_length=100, examples=["Plumbing"])
    time: str = Field(..., description="Time of day, 'h:mm AM/PM' or 'HH:MM'", examples=["9:30 AM"])
    preferred_date: Optional[date] = None
    budget: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)
    target_provider: Optional[UUID] = None


class OfferToProviderRequest(CamelModel):
    request_id: UUID
    provider_id: UUID


class CancelRequest(CamelModel):
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class ServiceRequestResponse(CamelModel):
    success: bool = True
    request: ServiceRequestOut


class ServiceRequestListResponse(CamelModel):
    success: bool = True
    count: int
    requests: List[ServiceRequestOut]


class AvailableRequestsResponse(CamelModel):
    success: bool = True
    count: int
    requests: List[AvailableRequestOut]


class RecommendedJobOut(AvailableRequestOut):
    recommendation_score: float
    match_reason: str


class RecommendedJobsResponse(CamelModel):
    success: bool = True
    count: int
    jobs: List[RecommendedJobOut]


class AcceptOfferResponse(CamelModel):
    success: bool = True
    booking: BookingOut
    request: ServiceRequestOut


class BookingResponse(CamelModel):
    success: bool = True
    booking: BookingOut


class BookingListResponse(CamelModel):
    success: bool = True
    count: int
    bookings: List[BookingOut]


# Service requests
@router.post(
    "/post-service-request",
    response_model=ServiceRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a service request",
)
async def post_service_request(
    payload: PostServiceRequest,
    user: User = Depends(get_verified_user),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    """
    Create a Waiting request.

    Providers with a matching skill are notified, or only the target
    provider when ``targetProvider`` is given.
    """
    operation = "post-service-request"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    result = ServiceRequestService(db).post_request(
        user,
        name=payload.name,
        address=payload.address,
        phone=payload.phone,
        type_of_work=payload.type_of_work,
        time=payload.time,
        preferred_date=payload.preferred_date,
        budget=payload.budget,
        notes=payload.notes,
        target_provider_id=payload.target_provider,
    )
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_201_CREATED,
        lambda: ServiceRequestResponse(request=ServiceRequestOut.model_validate(result.request)),
        result.events,
    )


@router.get("/my-service-requests", response_model=ServiceRequestListResponse)
def list_my_service_requests(
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> ServiceRequestListResponse:
    requests = ServiceRequestService(db).list_for_requester(user)
    return ServiceRequestListResponse(
        count=len(requests),
        requests=[ServiceRequestOut.model_validate(r) for r in requests],
    )


@router.get("/service-request/{request_id}", response_model=ServiceRequestResponse)
def get_service_request(
    request_id: UUID,
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> ServiceRequestResponse:
    request = ServiceRequestService(db).get_visible_request(user, request_id)
    return ServiceRequestResponse(request=ServiceRequestOut.model_validate(request))


@router.delete("/service-request/{request_id}/cancel", response_model=ServiceRequestResponse)
async def cancel_service_request(
    request_id: UUID,
    payload: Optional[CancelRequest] = Body(default=None),
    user: User = Depends(get_verified_user),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    operation = f"cancel:{request_id}"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    reason = payload.cancellation_reason if payload else None
    result = ServiceRequestService(db).cancel_request(user, request_id, reason)
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_200_OK,
        lambda: ServiceRequestResponse(request=ServiceRequestOut.model_validate(result.request)),
        result.events,
    )


@router.post("/offer-to-provider", response_model=MessageResponse)
async def offer_to_provider(
    payload: OfferToProviderRequest,
    user: User = Depends(get_verified_user),
    expected_version: Optional[int] = Depends(get_expected_version),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    operation = f"offer:{payload.request_id}:{payload.provider_id}"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    result = ServiceRequestService(db).offer_to_provider(
        user, payload.request_id, payload.provider_id, expected_version
    )
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_200_OK,
        lambda: MessageResponse(message="Offer sent to provider"),
        result.events,
    )


# Offer decisions
@router.post(
    "/service-request/{request_id}/accept-offer",
    response_model=AcceptOfferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Accept an offer",
)
async def accept_offer(
    request_id: UUID,
    user: User = Depends(get_verified_user),
    expected_version: Optional[int] = Depends(get_expected_version),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    """
    Accept the offer addressed to the caller.

    Creates the booking and moves the request to Working in one transaction.

    Errors:
    - 404 if the request does not exist
    - 403 if the caller is not the targeted provider
    - 409 if the request is no longer Waiting or its version changed
    """
    operation = f"accept-offer:{request_id}"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    result = ServiceRequestService(db).accept_offer(user, request_id, expected_version)
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_201_CREATED,
        lambda: AcceptOfferResponse(
            booking=BookingOut.model_validate(result.booking),
            request=ServiceRequestOut.model_validate(result.request),
        ),
        result.events,
    )


@router.post("/service-request/{request_id}/reject-offer", response_model=MessageResponse)
async def reject_offer(
    request_id: UUID,
    user: User = Depends(get_verified_user),
    expected_version: Optional[int] = Depends(get_expected_version),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    """Decline the offer; the request goes back to the open pool."""
    operation = f"reject-offer:{request_id}"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    result = ServiceRequestService(db).reject_offer(user, request_id, expected_version)
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_200_OK,
        lambda: MessageResponse(message="Offer rejected"),
        result.events,
    )


def _available_fields(request, requester: User, viewer: User) -> dict:
    """Provider-facing view of a request; the target provider id stays hidden."""
    return dict(
        id=request.id,
        name=request.name,
        address=request.address,
        phone=request.phone,
        type_of_work=request.type_of_work,
        budget=float(request.budget) if request.budget is not None else None,
        notes=request.notes,
        preferred_date=request.preferred_date,
        time=request.time,
        status=request.status,
        expires_at=request.expires_at,
        version=request.version,
        created_at=request.created_at,
        targeted=request.target_provider_id == viewer.id,
        requester=UserPublic.model_validate(requester),
    )


@router.get("/available-service-requests", response_model=AvailableRequestsResponse)
def available_service_requests(
    skills: Optional[str] = Query(None, description="Comma separated type-of-work filter"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> AvailableRequestsResponse:
    """
    Waiting, unexpired requests that are open to every provider or offered
    to the caller, newest first. Service providers only.
    """
    rows, total = ServiceRequestService(db).available_for_provider(user, skills=skills, page=page, limit=limit)
    requests = [AvailableRequestOut(**_available_fields(request, requester, user)) for request, requester in rows]
    return AvailableRequestsResponse(count=total, requests=requests)


@router.get("/recommended-jobs", response_model=RecommendedJobsResponse)
def recommended_jobs(
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> RecommendedJobsResponse:
    """Open requests that fit the calling provider's skills, best match first."""
    recommendations = RecommendationService(db).recommend_jobs(user, limit=limit)
    jobs = [
        RecommendedJobOut(
            **_available_fields(r.request, r.requester, user),
            recommendation_score=r.score,
            match_reason=r.reason,
        )
        for r in recommendations
    ]
    return RecommendedJobsResponse(count=len(jobs), jobs=jobs)


# Bookings
@router.get("/bookings", response_model=BookingListResponse)
def list_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> BookingListResponse:
    bookings = BookingService(db).list_for_user(user, booking_status)
    return BookingListResponse(
        count=len(bookings),
        bookings=[BookingOut.model_validate(b) for b in bookings],
    )


@router.get("/booking/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = BookingService(db).get_booking(user, booking_id)
    return BookingResponse(booking=BookingOut.model_validate(booking))


@router.put("/booking/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: UUID,
    user: User = Depends(get_verified_user),
    expected_version: Optional[int] = Depends(get_expected_version),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: Session = Depends(get_db),
):
    """
    Mark the booking and its request Complete.

    Repeating the call on a Complete booking returns it unchanged.
    """
    operation = f"complete-booking:{booking_id}"
    replay = replay_response(db, user, idempotency_key, operation)
    if replay is not None:
        return replay

    result = BookingService(db).complete_booking(user, booking_id, expected_version)
    return await commit_and_respond(
        db, user, idempotency_key, operation, status.HTTP_200_OK,
        lambda: BookingResponse(booking=BookingOut.model_validate(result.booking)),
        result.events,
    )
