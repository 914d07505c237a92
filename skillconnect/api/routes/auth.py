"""Authentication routes.

Provides password-based authentication endpoints:
- POST /auth/register: Create an account (unverified until an admin verifies it)
- POST /auth/login: Exchange email and password for a JWT token
- GET /auth/me: Current user's profile
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from skillconnect.api.dependencies import get_current_user, get_db
from skillconnect.api.schemas import CamelModel, UserProfile
from skillconnect.lib.db import commit_or_conflict
from skillconnect.models.users import EmploymentStatus, User, UserRole
from skillconnect.services.auth_service import AuthService


router = APIRouter(prefix="/auth", tags=["Authentication"])


# Request/Response Models
class RegisterRequest(CamelModel):
    """Registration payload."""
    email: EmailStr = Field(..., examples=["user@example.com"])
    username: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=2, max_length=30)
    last_name: str = Field(..., min_length=2, max_length=30)
    role: UserRole = Field(default=UserRole.COMMUNITY_MEMBER)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    birthdate: Optional[date] = None
    employed: Optional[EmploymentStatus] = None
    skills: List[str] = Field(default_factory=list)
    profile_pic: Optional[str] = Field(None, max_length=500)

    @field_validator("username")
    @classmethod
    def username_has_no_spaces(cls, value: str) -> str:
        if " " in value.strip():
            raise ValueError("Username cannot contain spaces")
        return value.strip()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AuthResponse(CamelModel):
    """Token plus the profile it belongs to."""
    success: bool = True
    token: Optional[str] = Field(None, description="JWT access token")
    user: UserProfile


# Dependency to get AuthService
def get_auth_service(
    db: Session = Depends(get_db)
) -> AuthService:
    """Get AuthService instance with database session."""
    return AuthService(db)


# Routes
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create a Community Member or Service Provider account",
)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
) -> AuthResponse:
    """Register a new account.

    Service providers must list one to three skills. The account can log in
    immediately but marketplace actions wait for admin verification.
    """
    user = AuthService(db).register(
        email=payload.email,
        username=payload.username,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        phone=payload.phone,
        address=payload.address,
        birthdate=payload.birthdate,
        employed=payload.employed,
        skills=payload.skills,
        profile_pic=payload.profile_pic,
    )
    commit_or_conflict(db)
    return AuthResponse(user=UserProfile.model_validate(user))


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login",
    description="Exchange credentials for a JWT token",
)
def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Login with email and password.

    Errors:
    - 401 for unknown email or wrong password
    - 403 for banned accounts
    """
    result = auth_service.login(payload.email, payload.password)
    return AuthResponse(token=result["token"], user=UserProfile.model_validate(result["user"]))


@router.get("/me", response_model=AuthResponse)
def me(user: User = Depends(get_current_user)) -> AuthResponse:
    """Profile of the bearer token's user; works before verification."""
    return AuthResponse(user=UserProfile.model_validate(user))
