"""Tests for authentication service."""
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from skillconnect.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    UnauthorizedException,
)
from skillconnect.lib.jwt import create_access_token, get_user_from_token
from skillconnect.models.users import User, UserRole
from skillconnect.services.auth_service import (
    AuthService,
    hash_password,
    normalize_skills,
    verify_password,
)
from tests.helpers import TEST_PASSWORD, build_user


@pytest.fixture
def mock_session():
    """Create mock database session."""
    return MagicMock()


@pytest.mark.unit
def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass")

    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)


@pytest.mark.unit
def test_verify_password_rejects_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


@pytest.mark.unit
def test_normalize_skills_trims_and_deduplicates():
    skills = normalize_skills(UserRole.SERVICE_PROVIDER, [" Plumbing ", "plumbing", "Carpentry", ""])

    assert skills == ["Plumbing", "Carpentry"]


@pytest.mark.unit
@pytest.mark.parametrize("skills", [[], None, ["A", "B", "C", "D"]])
def test_normalize_skills_provider_limits(skills):
    with pytest.raises(BadRequestException):
        normalize_skills(UserRole.SERVICE_PROVIDER, skills)


@pytest.mark.unit
def test_normalize_skills_members_may_have_none():
    assert normalize_skills(UserRole.COMMUNITY_MEMBER, None) == []


@pytest.mark.unit
def test_register_admin_forbidden(mock_session):
    with pytest.raises(ForbiddenException):
        AuthService(mock_session).register(
            email="root@example.com",
            username="root",
            password="s3cret-pass",
            first_name="Root",
            last_name="User",
            role=UserRole.ADMIN,
        )
    mock_session.add.assert_not_called()


@pytest.mark.unit
def test_register_stages_unverified_user(db):
    user = AuthService(db).register(
        email="  Paolo@Example.com ",
        username="paolo",
        password="s3cret-pass",
        first_name="Paolo",
        last_name="Reyes",
        role=UserRole.SERVICE_PROVIDER,
        skills=["Electrical"],
    )
    db.commit()

    stored = db.get(User, user.id)
    assert stored.email == "paolo@example.com"
    assert stored.verified is False
    assert stored.skills == ["Electrical"]
    assert verify_password("s3cret-pass", stored.password_hash)


@pytest.mark.unit
def test_register_duplicate_username(db):
    existing = build_user()
    db.add(existing)
    db.commit()

    with pytest.raises(ConflictException) as exc_info:
        AuthService(db).register(
            email="fresh@example.com",
            username=existing.username,
            password="s3cret-pass",
            first_name="Fresh",
            last_name="User",
            role=UserRole.COMMUNITY_MEMBER,
        )
    assert exc_info.value.details == {"field": "username"}


@pytest.mark.unit
def test_login_returns_token_for_user(db):
    user = build_user(role=UserRole.SERVICE_PROVIDER)
    db.add(user)
    db.commit()

    result = AuthService(db).login(user.email.upper(), TEST_PASSWORD)

    assert result["user"].id == user.id
    assert get_user_from_token(result["token"]) == (str(user.id), "Service Provider")


@pytest.mark.unit
def test_login_unknown_email(db):
    with pytest.raises(UnauthorizedException):
        AuthService(db).login("ghost@example.com", TEST_PASSWORD)


@pytest.mark.unit
def test_user_for_token_with_missing_user(db):
    token = create_access_token(str(uuid4()), "Community Member")

    with pytest.raises(UnauthorizedException, match="User not found"):
        AuthService(db).user_for_token(token)


@pytest.mark.unit
def test_user_for_token_with_garbage(mock_session):
    with pytest.raises(UnauthorizedException):
        AuthService(mock_session).user_for_token("garbage")


@pytest.mark.unit
def test_login_banned_user(db):
    user = build_user(banned=True)
    db.add(user)
    db.commit()

    with pytest.raises(ForbiddenException):
        AuthService(db).login(user.email, TEST_PASSWORD)


@pytest.mark.unit
def test_login_wrong_password(db):
    user = build_user()
    db.add(user)
    db.commit()

    with pytest.raises(UnauthorizedException):
        AuthService(db).login(user.email, "not-the-password")


@pytest.mark.unit
def test_change_password(db):
    user = build_user()
    db.add(user)
    db.commit()

    AuthService(db).change_password(user, TEST_PASSWORD, "new-secret-9", "new-secret-9")
    db.commit()

    assert verify_password("new-secret-9", user.password_hash)
    assert not verify_password(TEST_PASSWORD, user.password_hash)


@pytest.mark.unit
@pytest.mark.parametrize(
    "current, new, confirm",
    [
        ("wrong-password", "new-secret-9", "new-secret-9"),
        (TEST_PASSWORD, "new-secret-9", "new-secret-0"),
        (TEST_PASSWORD, TEST_PASSWORD, TEST_PASSWORD),
    ],
)
def test_change_password_rejected(db, current, new, confirm):
    user = build_user()
    db.add(user)
    db.commit()
    original_hash = user.password_hash

    with pytest.raises(BadRequestException):
        AuthService(db).change_password(user, current, new, confirm)
    assert user.password_hash == original_hash
