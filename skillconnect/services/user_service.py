"""
Profile updates and admin moderation (verify, ban).
"""
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import BadRequestException, ConflictException, NotFoundException
from skillconnect.lib.logging import get_logger
from skillconnect.lib.realtime import RealtimeEvent
from skillconnect.models.notifications import NotificationType
from skillconnect.models.users import User, UserRole
from skillconnect.services.auth_service import normalize_skills
from skillconnect.services.notification_service import NotificationService


logger = get_logger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "phone", "address", "birthdate", "employed", "profile_pic")


class UserService:
    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationService(session)

    def get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))
        return user

    def update_profile(self, user: User, changes: dict) -> User:
        """Apply the provided profile fields; skills are re-validated for providers."""
        for name in PROFILE_FIELDS:
            if name in changes and changes[name] is not None:
                setattr(user, name, changes[name])

        if changes.get("skills") is not None:
            user.skills = normalize_skills(user.role, changes["skills"])

        logger.info("Profile updated", extra={"user_id": str(user.id), "fields": sorted(changes)})
        return user

    def list_providers(self, skill: Optional[str] = None) -> List[User]:
        """Verified, active providers, highest rated first."""
        providers = self.session.execute(
            select(User)
            .where(
                User.role == UserRole.SERVICE_PROVIDER,
                User.verified.is_(True),
                User.banned.is_(False),
            )
            .order_by(User.average_rating.desc(), User.total_reviews.desc())
        ).scalars().all()
        if skill:
            needle = skill.strip().lower()
            providers = [p for p in providers if any(needle in s.lower() for s in p.skills or [])]
        return list(providers)

    def list_users(
        self,
        role: Optional[UserRole] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        conditions = [User.role == role] if role is not None else []
        total = self.session.execute(
            select(func.count()).select_from(User).where(*conditions)
        ).scalar_one()
        users = self.session.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return list(users), total

    def verify_user(self, user_id: UUID) -> Tuple[User, List[RealtimeEvent]]:
        user = self.get_user(user_id)
        if user.verified:
            raise ConflictException("User is already verified")
        user.verified = True
        event = self.notifications.notify(
            user.id,
            "Account Verified",
            "Your account has been verified. You now have full access to SkillConnect.",
            NotificationType.ACCOUNT_VERIFIED,
        )
        logger.info("User verified", extra={"user_id": str(user.id)})
        return user, [event]

    def ban_user(self, admin: User, user_id: UUID) -> Tuple[User, List[RealtimeEvent]]:
        user = self.get_user(user_id)
        if user.id == admin.id:
            raise BadRequestException("Admins cannot ban themselves")
        if user.banned:
            return user, []
        user.banned = True
        event = self.notifications.notify(
            user.id,
            "Account Banned",
            "Your account has been banned by an administrator.",
            NotificationType.ACCOUNT_BANNED,
        )
        logger.info("User banned", extra={"user_id": str(user.id), "admin_id": str(admin.id)})
        return user, [event]
