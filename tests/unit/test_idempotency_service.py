"""
Unit tests for Idempotency-Key de-duplication.
"""
import pytest

from skillconnect.api.middleware.error_handler import ConflictException
from skillconnect.services.idempotency_service import IdempotencyService
from tests.helpers import build_user


@pytest.fixture
def user(db):
    user = build_user()
    db.add(user)
    db.commit()
    return user


@pytest.mark.unit
def test_missing_key_is_ignored(db, user):
    service = IdempotencyService(db)

    service.record(user.id, None, "accept-offer", 201, {"success": True})

    assert service.find(user.id, None, "accept-offer") is None
    assert service.find(user.id, "", "accept-offer") is None


@pytest.mark.unit
def test_recorded_response_is_found(db, user):
    service = IdempotencyService(db)
    service.record(user.id, "key-1", "accept-offer:r-1", 201, {"success": True, "booking": {"id": "b-1"}})
    db.commit()

    record = service.find(user.id, "key-1", "accept-offer:r-1")

    assert record.status_code == 201
    assert record.response_body["booking"] == {"id": "b-1"}


@pytest.mark.unit
def test_keys_are_scoped_per_user(db, user):
    other = build_user()
    db.add(other)
    service = IdempotencyService(db)
    service.record(user.id, "key-1", "complete-booking:b-1", 200, {})
    db.commit()

    assert service.find(other.id, "key-1", "complete-booking:b-1") is None


@pytest.mark.unit
def test_key_reused_for_other_operation(db, user):
    service = IdempotencyService(db)
    service.record(user.id, "key-1", "accept-offer:r-1", 201, {})
    db.commit()

    with pytest.raises(ConflictException) as exc_info:
        service.find(user.id, "key-1", "reject-offer:r-1")
    assert exc_info.value.details == {"operation": "accept-offer:r-1"}
