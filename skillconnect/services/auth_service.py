"""Authentication service for email/password accounts.

Handles the account flow:
1. Register: validate role rules, hash the password with bcrypt, create the user
2. Login: check credentials and ban state, issue a JWT
3. Token resolution: map a bearer token back to a live user
"""
from datetime import date
from typing import List, Optional
from uuid import UUID, uuid4

import bcrypt
import jwt
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    UnauthorizedException,
)
from skillconnect.lib.db import utcnow
from skillconnect.lib.jwt import create_access_token, get_user_from_token
from skillconnect.lib.logging import get_logger
from skillconnect.models.users import EmploymentStatus, User, UserRole


logger = get_logger(__name__)

MAX_PROVIDER_SKILLS = 3


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_skills(role: UserRole, skills: Optional[List[str]]) -> List[str]:
    """Trim and de-duplicate; providers need between one and three skills."""
    cleaned: List[str] = []
    for skill in skills or []:
        skill = (skill or "").strip()
        if skill and skill.lower() not in (s.lower() for s in cleaned):
            cleaned.append(skill)

    if role == UserRole.SERVICE_PROVIDER:
        if not cleaned:
            raise BadRequestException("Service providers must list at least one skill")
        if len(cleaned) > MAX_PROVIDER_SKILLS:
            raise BadRequestException(
                f"Service providers can list at most {MAX_PROVIDER_SKILLS} skills",
                details={"skills": cleaned},
            )
    return cleaned


class AuthService:
    """Authentication service for password login.

    Admin accounts are never self-registered; they are created by
    operators directly in the database.
    """

    def __init__(self, session: Session):
        """Initialize auth service with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def register(
        self,
        *,
        email: str,
        username: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        birthdate: Optional[date] = None,
        employed: Optional[EmploymentStatus] = None,
        skills: Optional[List[str]] = None,
        profile_pic: Optional[str] = None,
    ) -> User:
        """Stage a new unverified user.

        Raises:
            ForbiddenException: If the role is Admin
            ConflictException: If the email or username is taken
            BadRequestException: If provider skill rules are violated
        """
        if role == UserRole.ADMIN:
            raise ForbiddenException("Admin accounts cannot be self-registered")

        email = email.strip().lower()
        username = username.strip()

        taken = self.session.execute(
            select(User.email, User.username).where(
                or_(User.email == email, User.username == username)
            )
        ).first()
        if taken is not None:
            field_name = "email" if taken.email == email else "username"
            raise ConflictException(
                f"An account with this {field_name} already exists",
                details={"field": field_name},
            )

        now = utcnow()
        user = User(
            id=uuid4(),
            email=email,
            username=username,
            password_hash=hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            address=address,
            birthdate=birthdate,
            employed=employed,
            role=role,
            skills=normalize_skills(role, skills),
            profile_pic=profile_pic,
            average_rating=0.0,
            total_reviews=0,
            verified=False,
            banned=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(user)

        logger.info("User registered", extra={"user_id": str(user.id), "role": role.value})
        return user

    def login(self, email: str, password: str) -> dict:
        """Check credentials and issue a token.

        Returns:
            {"token": "<jwt>", "user": User}

        Raises:
            UnauthorizedException: On unknown email or wrong password
            ForbiddenException: If the account is banned
        """
        user = self.session.execute(
            select(User).where(User.email == email.strip().lower())
        ).scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login attempt", extra={"email": email})
            raise UnauthorizedException("Invalid email or password")
        if user.banned:
            raise ForbiddenException("Your account has been banned")

        token = create_access_token(user_id=str(user.id), role=user.role.value)
        logger.info("User logged in", extra={"user_id": str(user.id)})
        return {"token": token, "user": user}

    def user_for_token(self, token: str) -> User:
        """Resolve a bearer token to its user.

        Raises:
            UnauthorizedException: If the token is invalid or the user no longer exists
        """
        try:
            user_id, _role = get_user_from_token(token)
            user = self.session.get(User, UUID(user_id))
        except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
            raise UnauthorizedException("Invalid or expired token") from exc

        if user is None:
            raise UnauthorizedException("User not found")
        return user

    def change_password(self, user: User, current_password: str, new_password: str, confirm_password: str) -> User:
        """Replace the password after checking the current one.

        Raises:
            BadRequestException: If the current password is wrong, the new
                passwords differ, or the new password equals the current one
        """
        if not verify_password(current_password, user.password_hash):
            logger.warning("Password change with wrong current password", extra={"user_id": str(user.id)})
            raise BadRequestException("Current password is incorrect")
        if new_password != confirm_password:
            raise BadRequestException("New password and confirmation do not match")
        if new_password == current_password:
            raise BadRequestException("New password must differ from the current password")

        user.password_hash = hash_password(new_password)
        logger.info("Password changed", extra={"user_id": str(user.id)})
        return user
