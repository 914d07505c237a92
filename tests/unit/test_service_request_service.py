"""
Unit tests for the service-request lifecycle.
"""
from datetime import date, timedelta
from uuid import uuid4

import pytest

from skillconnect.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from skillconnect.lib.db import utcnow
from skillconnect.lib.metrics import get_metrics_collector
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.notifications import Notification, NotificationType
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.models.users import UserRole
from skillconnect.services.service_request_service import (
    EXPIRED_REASON,
    ServiceRequestService,
    check_version,
    parse_time_of_day,
)
from tests.helpers import build_request, build_user


@pytest.fixture
def people(db):
    """A requester, a plumber, a welder and an admin."""
    requester = build_user(first_name="Maria", last_name="Santos")
    plumber = build_user(UserRole.SERVICE_PROVIDER, first_name="Paolo", last_name="Reyes", skills=["Plumbing"])
    welder = build_user(UserRole.SERVICE_PROVIDER, skills=["Welding"])
    admin = build_user(UserRole.ADMIN)
    db.add_all([requester, plumber, welder, admin])
    db.commit()
    return requester, plumber, welder, admin


def _persist(db, request):
    db.add(request)
    db.commit()
    return request


def _post(db, requester, **overrides):
    fields = {
        "name": "Maria Santos",
        "address": "12 Main St",
        "phone": "555-0100",
        "type_of_work": "Plumbing",
        "time": "9:30 AM",
    }
    fields.update(overrides)
    result = ServiceRequestService(db).post_request(requester, **fields)
    db.commit()
    return result


def _notification_types(db, user):
    return [n.type for n in db.query(Notification).filter_by(user_id=user.id).all()]


@pytest.mark.unit
@pytest.mark.parametrize("value, expected", [("9:30 AM", (9, 30)), ("09:30 pm", (21, 30)), ("17:05", (17, 5))])
def test_parse_time_of_day(value, expected):
    parsed = parse_time_of_day(value)

    assert (parsed.hour, parsed.minute) == expected


@pytest.mark.unit
def test_parse_time_of_day_rejects_garbage():
    with pytest.raises(BadRequestException):
        parse_time_of_day("half past nine")


@pytest.mark.unit
def test_check_version_mismatch():
    request = ServiceRequest(version=3)

    check_version(request, None)
    check_version(request, 3)
    with pytest.raises(ConflictException) as exc_info:
        check_version(request, 2)
    assert exc_info.value.details == {"current_version": 3, "expected_version": 2}


@pytest.mark.unit
def test_post_request_notifies_matching_providers(db, people):
    requester, plumber, welder, _ = people

    result = _post(db, requester)

    request = db.get(ServiceRequest, result.request.id)
    assert request.status == ServiceRequestStatus.WAITING
    assert request.version == 1
    assert _notification_types(db, plumber) == [NotificationType.SERVICE_REQUEST]
    assert _notification_types(db, welder) == []
    assert _notification_types(db, requester) == [NotificationType.SERVICE_REQUEST_POSTED]
    assert {e.event for e in result.events} == {"new-notification"}


@pytest.mark.unit
def test_post_targeted_request_offers_only_target(db, people):
    requester, plumber, welder, _ = people

    _post(db, requester, type_of_work="Welding", target_provider_id=plumber.id)

    assert _notification_types(db, plumber) == [NotificationType.SERVICE_OFFER]
    assert _notification_types(db, welder) == []


@pytest.mark.unit
def test_post_request_with_preferred_date_sets_expiry(db, people):
    requester = people[0]
    tomorrow = date.today() + timedelta(days=2)

    result = _post(db, requester, preferred_date=tomorrow, time="14:00")

    expires_at = result.request.expires_at
    assert (expires_at.date(), expires_at.hour, expires_at.minute) == (tomorrow, 14, 0)


@pytest.mark.unit
def test_post_request_in_the_past_rejected(db, people):
    with pytest.raises(BadRequestException):
        _post(db, people[0], preferred_date=date(2020, 1, 1))


@pytest.mark.unit
def test_provider_cannot_post(db, people):
    with pytest.raises(ForbiddenException):
        _post(db, people[1])


@pytest.mark.unit
def test_post_to_non_provider_target_rejected(db, people):
    requester, _, _, admin = people

    with pytest.raises(BadRequestException):
        _post(db, requester, target_provider_id=admin.id)
    with pytest.raises(NotFoundException):
        _post(db, requester, target_provider_id=uuid4())


@pytest.mark.unit
def test_offer_to_provider_keeps_waiting(db, people):
    requester, plumber, _, _ = people
    request = _persist(db, build_request(requester))

    result = ServiceRequestService(db).offer_to_provider(requester, request.id, plumber.id)
    db.commit()

    assert request.target_provider_id == plumber.id
    assert request.status == ServiceRequestStatus.WAITING
    assert [e.event for e in result.events] == ["new-notification", "service-request-updated"]


@pytest.mark.unit
def test_offer_by_someone_else_forbidden(db, people):
    requester, plumber, welder, _ = people
    request = _persist(db, build_request(requester))

    with pytest.raises(ForbiddenException):
        ServiceRequestService(db).offer_to_provider(welder, request.id, plumber.id)


@pytest.mark.unit
def test_accept_offer_creates_booking(db, people):
    requester, plumber, _, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))

    result = ServiceRequestService(db).accept_offer(plumber, request.id, expected_version=1)
    db.commit()

    assert request.status == ServiceRequestStatus.WORKING
    assert request.service_provider_id == plumber.id
    assert request.eta is not None
    assert request.version == 2
    booking = db.query(Booking).filter_by(service_request_id=request.id).one()
    assert booking.id == result.booking.id
    assert booking.status == BookingStatus.WORKING
    assert _notification_types(db, requester) == [NotificationType.OFFER_ACCEPTED]
    assert [e.event for e in result.events] == ["new-notification", "service-request-updated", "booking-updated"]
    assert result.events[-1].audience == frozenset({str(requester.id), str(plumber.id)})
    assert get_metrics_collector().get_counter_value(
        "state_transitions_total", {"entity": "service_request", "action": "offer-accepted"}
    ) == 1


@pytest.mark.unit
def test_accept_offer_not_addressed_to_provider(db, people):
    requester, plumber, welder, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))

    with pytest.raises(ForbiddenException):
        ServiceRequestService(db).accept_offer(welder, request.id)

    db.rollback()
    db.refresh(request)
    assert request.status == ServiceRequestStatus.WAITING
    assert request.version == 1
    assert request.service_provider_id is None
    assert db.query(Booking).count() == 0


@pytest.mark.unit
@pytest.mark.parametrize("transition", ["accept_offer", "reject_offer"])
def test_offer_decision_on_unknown_request(db, people, transition):
    plumber = people[1]

    with pytest.raises(NotFoundException):
        getattr(ServiceRequestService(db), transition)(plumber, uuid4())


@pytest.mark.unit
def test_second_accept_conflicts(db, people):
    requester, plumber, _, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))
    service = ServiceRequestService(db)
    service.accept_offer(plumber, request.id)
    db.commit()

    with pytest.raises(ConflictException):
        service.accept_offer(plumber, request.id)
    assert db.query(Booking).count() == 1


@pytest.mark.unit
def test_accept_with_stale_version_conflicts(db, people):
    requester, plumber, _, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))

    with pytest.raises(ConflictException):
        ServiceRequestService(db).accept_offer(plumber, request.id, expected_version=7)


@pytest.mark.unit
def test_reject_offer_returns_request_to_pool(db, people):
    requester, plumber, _, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))

    ServiceRequestService(db).reject_offer(plumber, request.id)
    db.commit()

    assert request.status == ServiceRequestStatus.WAITING
    assert request.target_provider_id is None
    assert _notification_types(db, requester) == [NotificationType.OFFER_REJECTED]


@pytest.mark.unit
def test_cancel_by_requester_notifies_target(db, people):
    requester, plumber, _, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))

    ServiceRequestService(db).cancel_request(requester, request.id, "Found someone else")
    db.commit()

    assert request.status == ServiceRequestStatus.CANCELLED
    assert request.cancellation_reason == "Found someone else"
    assert request.target_provider_id is None
    assert _notification_types(db, plumber) == [NotificationType.REQUEST_CANCELLED]
    assert _notification_types(db, requester) == []


@pytest.mark.unit
def test_admin_cancel_notifies_requester(db, people):
    requester, _, _, admin = people
    request = _persist(db, build_request(requester))

    ServiceRequestService(db).cancel_request(admin, request.id)
    db.commit()

    assert request.cancellation_reason == ""
    assert _notification_types(db, requester) == [NotificationType.REQUEST_CANCELLED]


@pytest.mark.unit
def test_cancel_working_request_conflicts(db, people):
    requester, plumber, _, _ = people
    request = _persist(
        db, build_request(requester, status=ServiceRequestStatus.WORKING, service_provider=plumber)
    )

    with pytest.raises(ConflictException):
        ServiceRequestService(db).cancel_request(requester, request.id)


@pytest.mark.unit
def test_cancel_by_stranger_forbidden(db, people):
    requester, _, welder, _ = people
    request = _persist(db, build_request(requester))

    with pytest.raises(ForbiddenException):
        ServiceRequestService(db).cancel_request(welder, request.id)


@pytest.mark.unit
def test_expire_stale_requests(db, people):
    requester, plumber, _, _ = people
    stale = _persist(db, build_request(requester, target_provider=plumber, expires_in=timedelta(minutes=-5)))
    fresh = _persist(db, build_request(requester))

    count, events = ServiceRequestService(db).expire_stale_requests()
    db.commit()

    assert count == 1
    assert stale.status == ServiceRequestStatus.CANCELLED
    assert stale.cancellation_reason == EXPIRED_REASON
    assert stale.target_provider_id is None
    assert fresh.status == ServiceRequestStatus.WAITING
    assert [e.event for e in events] == ["new-notification", "service-request-updated"]
    assert ServiceRequestService(db).expire_stale_requests() == (0, [])


@pytest.mark.unit
def test_available_for_provider_filters(db, people):
    requester, plumber, welder, _ = people
    open_request = _persist(db, build_request(requester, type_of_work="Plumbing"))
    mine = _persist(db, build_request(requester, type_of_work="Pipe Repair", target_provider=plumber))
    _persist(db, build_request(requester, target_provider=welder))
    _persist(db, build_request(requester, expires_in=timedelta(minutes=-1)))
    _persist(db, build_request(requester, status=ServiceRequestStatus.CANCELLED))

    service = ServiceRequestService(db)
    rows, total = service.available_for_provider(plumber)
    filtered, _ = service.available_for_provider(plumber, skills="pipe, roofing")

    assert {request.id for request, _ in rows} == {open_request.id, mine.id}
    assert total == 2
    assert [request.id for request, _ in filtered] == [mine.id]


@pytest.mark.unit
def test_available_newest_first_with_full_total(db, people):
    requester, plumber, _, _ = people
    now = utcnow()
    oldest = _persist(db, build_request(requester, created_at=now - timedelta(hours=3)))
    middle = _persist(db, build_request(requester, created_at=now - timedelta(hours=2)))
    newest = _persist(db, build_request(requester, created_at=now - timedelta(hours=1)))
    service = ServiceRequestService(db)

    rows, total = service.available_for_provider(plumber)
    first_page, paged_total = service.available_for_provider(plumber, page=1, limit=2)

    assert [request.id for request, _ in rows] == [newest.id, middle.id, oldest.id]
    assert [request.id for request, _ in first_page] == [newest.id, middle.id]
    assert paged_total == total == 3


@pytest.mark.unit
def test_rejected_request_is_available_again(db, people):
    requester, plumber, welder, _ = people
    request = _persist(db, build_request(requester, target_provider=plumber))
    service = ServiceRequestService(db)
    assert request.id not in {r.id for r, _ in service.available_for_provider(welder)[0]}

    service.reject_offer(plumber, request.id)
    db.commit()

    assert request.id in {r.id for r, _ in service.available_for_provider(plumber)[0]}
    assert request.id in {r.id for r, _ in service.available_for_provider(welder)[0]}


@pytest.mark.unit
def test_available_requires_provider(db, people):
    with pytest.raises(ForbiddenException):
        ServiceRequestService(db).available_for_provider(people[0])


@pytest.mark.unit
def test_visibility_limited_to_parties(db, people):
    requester, plumber, welder, admin = people
    request = _persist(db, build_request(requester, target_provider=plumber))
    service = ServiceRequestService(db)

    assert service.get_visible_request(plumber, request.id) is request
    assert service.get_visible_request(admin, request.id) is request
    with pytest.raises(ForbiddenException):
        service.get_visible_request(welder, request.id)


@pytest.mark.unit
def test_search_sorts_and_filters(db, people):
    requester = people[0]
    cheap = _persist(db, build_request(requester, budget=50.0))
    pricey = _persist(db, build_request(requester, budget=500.0))
    _persist(db, build_request(requester, type_of_work="Welding", budget=75.0))

    rows, total = ServiceRequestService(db).search(skill="plumb", sort="budget:asc")

    assert total == 2
    assert [request.id for request, _ in rows] == [cheap.id, pricey.id]
    assert rows[0][1].id == requester.id


@pytest.mark.unit
@pytest.mark.parametrize("sort", ["cost:asc", "budget:sideways"])
def test_search_rejects_bad_sort(db, sort):
    with pytest.raises(BadRequestException):
        ServiceRequestService(db).search(sort=sort)
