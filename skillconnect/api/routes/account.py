"""
Account routes under ``/user``: profile, password, provider directory and
recommendations, notifications.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from skillconnect.api.dependencies import get_current_user, get_db, get_verified_user
from skillconnect.api.middleware.error_handler import NotFoundException
from skillconnect.api.schemas import CamelModel, MessageResponse, NotificationOut, UserProfile, UserPublic
from skillconnect.lib.db import commit_or_conflict
from skillconnect.models.users import EmploymentStatus, User
from skillconnect.services.auth_service import AuthService
from skillconnect.services.notification_service import NotificationService
from skillconnect.services.recommendation_service import RecommendationService
from skillconnect.services.user_service import UserService


router = APIRouter(prefix="/user", tags=["Account"])


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=2, max_length=30)
    last_name: Optional[str] = Field(None, min_length=2, max_length=30)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    birthdate: Optional[date] = None
    employed: Optional[EmploymentStatus] = None
    profile_pic: Optional[str] = Field(None, max_length=500)
    skills: Optional[List[str]] = None


class ProfileResponse(CamelModel):
    success: bool = True
    user: UserProfile


class ProviderOut(UserPublic):
    skills: List[str] = []
    average_rating: float = 0.0
    total_reviews: int = 0


class ProviderListResponse(CamelModel):
    success: bool = True
    count: int
    providers: List[ProviderOut]


class PasswordUpdate(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str = Field(..., min_length=8, max_length=128)


class RecommendedProviderOut(ProviderOut):
    recommendation_score: float
    content_score: float
    history_score: float
    completed_jobs: int
    recommendation_reason: str


class RecommendedProvidersResponse(CamelModel):
    success: bool = True
    count: int
    providers: List[RecommendedProviderOut]


class NotificationListResponse(CamelModel):
    success: bool = True
    count: int
    total: int
    notifications: List[NotificationOut]


class UnreadCountResponse(CamelModel):
    success: bool = True
    count: int


class NotificationResponse(CamelModel):
    success: bool = True
    notification: NotificationOut


class MarkAllReadResponse(CamelModel):
    success: bool = True
    updated: int


# Profile
@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    """Update own profile; providers keep one to three skills."""
    UserService(db).update_profile(user, payload.model_dump(exclude_unset=True))
    commit_or_conflict(db)
    return ProfileResponse(user=UserProfile.model_validate(user))


@router.put("/password/update", response_model=MessageResponse)
def update_password(
    payload: PasswordUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """
    Change own password.

    Errors:
    - 400 if the current password is wrong or the new passwords do not match
    """
    AuthService(db).change_password(
        user, payload.current_password, payload.new_password, payload.confirm_password
    )
    commit_or_conflict(db)
    return MessageResponse(message="Password updated successfully")


@router.get("/service-providers", response_model=ProviderListResponse)
def list_service_providers(
    skill: Optional[str] = Query(None, description="Case-insensitive skill substring"),
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> ProviderListResponse:
    """Verified, non-banned providers, best rated first."""
    providers = UserService(db).list_providers(skill)
    return ProviderListResponse(
        count=len(providers),
        providers=[ProviderOut.model_validate(p) for p in providers],
    )


@router.get("/recommended-providers", response_model=RecommendedProvidersResponse)
def recommended_providers(
    type_of_work: str = Query(..., alias="typeOfWork", min_length=1, max_length=100),
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_verified_user),
    db: Session = Depends(get_db),
) -> RecommendedProvidersResponse:
    """Providers ranked by skill match, ratings and similar completed work."""
    recommendations = RecommendationService(db).recommend_providers(user, type_of_work, limit=limit)
    providers = [
        RecommendedProviderOut(
            **ProviderOut.model_validate(r.provider).model_dump(),
            recommendation_score=r.score,
            content_score=r.content_score,
            history_score=r.history_score,
            completed_jobs=r.completed_jobs,
            recommendation_reason=r.reason,
        )
        for r in recommendations
    ]
    return RecommendedProvidersResponse(count=len(providers), providers=providers)


# Notifications
@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationListResponse:
    notifications, total = NotificationService(db).list_for_user(
        user.id, unread_only=unread_only, page=page, limit=limit
    )
    return NotificationListResponse(
        count=len(notifications),
        total=total,
        notifications=[NotificationOut.model_validate(n) for n in notifications],
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=NotificationService(db).unread_count(user.id))


@router.put("/notifications/mark-all-read", response_model=MarkAllReadResponse)
def mark_all_read(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MarkAllReadResponse:
    updated = NotificationService(db).mark_all_read(user.id)
    commit_or_conflict(db)
    return MarkAllReadResponse(updated=updated)


@router.put("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationResponse:
    notification = NotificationService(db).mark_read(user.id, notification_id)
    if notification is None:
        raise NotFoundException("Notification", str(notification_id))
    commit_or_conflict(db)
    return NotificationResponse(notification=NotificationOut.model_validate(notification))
