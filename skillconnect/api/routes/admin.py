"""
Admin Routes - request log and account moderation.

Provides:
- GET /admin/service-requests: Paginated request log with skill/status filters and sorting
- POST /admin/service-requests/expire: Run the expired-request sweep now
- GET /admin/users: Paginated user list
- PUT /admin/user/verify/{id}: Verify an account
- DELETE /admin/user/{id}: Ban an account (accounts are never hard-deleted)

All endpoints require the Admin role.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from skillconnect.api.dependencies import get_admin_user, get_db
from skillconnect.api.schemas import CamelModel, ServiceRequestOut, UserProfile, UserPublic
from skillconnect.lib.db import commit_or_conflict
from skillconnect.lib.logging import get_logger
from skillconnect.lib.realtime import get_broker
from skillconnect.models.service_requests import ServiceRequestStatus
from skillconnect.models.users import User, UserRole
from skillconnect.services.service_request_service import ServiceRequestService
from skillconnect.services.user_service import UserService


logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# Response models
class AdminRequestItem(ServiceRequestOut):
    requester: UserPublic


class AdminRequestLogResponse(CamelModel):
    """Paginated request log."""
    count: int = Field(description="Total requests matching the filters")
    total_pages: int
    page: int
    requests: List[AdminRequestItem]


class ExpireResponse(CamelModel):
    success: bool = True
    expired: int


class UserListResponse(CamelModel):
    success: bool = True
    count: int
    total_pages: int
    users: List[UserProfile]


class ModerationResponse(CamelModel):
    success: bool = True
    message: str
    user: UserProfile


@router.get(
    "/service-requests",
    response_model=AdminRequestLogResponse,
    summary="Service request log",
)
def list_service_requests(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    skill: Optional[str] = Query(None, description="Case-insensitive type-of-work substring"),
    request_status: Optional[ServiceRequestStatus] = Query(None, alias="status"),
    sort: str = Query("createdAt:desc", description="field:order, e.g. budget:asc"),
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> AdminRequestLogResponse:
    """
    List every service request with its requester.

    Sortable fields: createdAt, expiresAt, budget, status, typeOfWork.
    """
    logger.info(
        "GET /admin/service-requests",
        extra={"page": page, "skill": skill, "status": request_status, "sort": sort},
    )
    rows, total = ServiceRequestService(db).search(
        page=page, limit=limit, skill=skill, status=request_status, sort=sort
    )
    return AdminRequestLogResponse(
        count=total,
        total_pages=(total + limit - 1) // limit,
        page=page,
        requests=[
            AdminRequestItem(
                **ServiceRequestOut.model_validate(request).model_dump(),
                requester=UserPublic.model_validate(requester),
            )
            for request, requester in rows
        ],
    )


@router.post("/service-requests/expire", response_model=ExpireResponse)
async def expire_service_requests(
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> ExpireResponse:
    """Cancel every Waiting request whose expiry has passed."""
    expired, events = ServiceRequestService(db).expire_stale_requests()
    commit_or_conflict(db)
    await get_broker().dispatch(events)
    return ExpireResponse(expired=expired)


@router.get("/users", response_model=UserListResponse)
def list_users(
    role: Optional[UserRole] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> UserListResponse:
    users, total = UserService(db).list_users(role=role, page=page, limit=limit)
    return UserListResponse(
        count=total,
        total_pages=(total + limit - 1) // limit,
        users=[UserProfile.model_validate(u) for u in users],
    )


@router.put("/user/verify/{user_id}", response_model=ModerationResponse)
async def verify_user(
    user_id: UUID,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> ModerationResponse:
    user, events = UserService(db).verify_user(user_id)
    commit_or_conflict(db)
    await get_broker().dispatch(events)
    return ModerationResponse(message="User verified successfully", user=UserProfile.model_validate(user))


@router.delete("/user/{user_id}", response_model=ModerationResponse)
async def ban_user(
    user_id: UUID,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> ModerationResponse:
    """Ban the account; its data is kept."""
    user, events = UserService(db).ban_user(admin, user_id)
    commit_or_conflict(db)
    await get_broker().dispatch(events)
    await get_broker().disconnect_user(user.id)
    return ModerationResponse(message="User banned successfully", user=UserProfile.model_validate(user))
