"""
Unit tests for the client-side offline cache and outbox.
"""
from unittest.mock import MagicMock

import httpx
import pytest

from skillconnect.client.offline_storage import (
    CACHE_TTL_SECONDS,
    SEARCH_HISTORY_LIMIT,
    OfflineStorage,
)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path, clock):
    return OfflineStorage(tmp_path / "offline" / "store.json", clock=clock)


def _response(status_code: int, body=None) -> httpx.Response:
    return httpx.Response(status_code, json=body or {}, request=httpx.Request("POST", "http://test"))


@pytest.mark.unit
def test_empty_store_reads_defaults(storage):
    assert storage.get_cached_service_requests() is None
    assert storage.get_cached_user_profile() is None
    assert storage.get_search_history() == []
    assert storage.get_offline_actions() == []
    assert storage.get_last_sync() is None
    assert storage.cache_size() == 0


@pytest.mark.unit
def test_cached_requests_expire_after_ttl(storage, clock):
    storage.cache_service_requests([{"id": "r-1"}])

    clock.now += CACHE_TTL_SECONDS - 1
    assert storage.get_cached_service_requests() == [{"id": "r-1"}]

    clock.now += 1
    assert storage.get_cached_service_requests() is None
    assert storage.cache_size() == 0


@pytest.mark.unit
def test_cached_providers_survive_new_instance(tmp_path, clock):
    path = tmp_path / "store.json"
    OfflineStorage(path, clock=clock).cache_service_providers([{"id": "p-1"}])

    assert OfflineStorage(path, clock=clock).get_cached_service_providers() == [{"id": "p-1"}]


@pytest.mark.unit
def test_profile_never_expires(storage, clock):
    storage.cache_user_profile({"firstName": "Maria"})
    clock.now += CACHE_TTL_SECONDS * 10

    assert storage.get_cached_user_profile() == {"firstName": "Maria"}


@pytest.mark.unit
def test_search_history_moves_repeat_to_front(storage):
    storage.add_to_search_history("plumbing")
    storage.add_to_search_history("carpentry")

    assert storage.add_to_search_history("plumbing") == ["plumbing", "carpentry"]


@pytest.mark.unit
def test_search_history_is_capped(storage):
    for index in range(SEARCH_HISTORY_LIMIT + 5):
        storage.add_to_search_history(f"term {index}")

    history = storage.get_search_history()
    assert len(history) == SEARCH_HISTORY_LIMIT
    assert history[0] == f"term {SEARCH_HISTORY_LIMIT + 4}"

    storage.clear_search_history()
    assert storage.get_search_history() == []


@pytest.mark.unit
def test_clear_all_and_cache_size(storage):
    storage.cache_user_profile({"firstName": "Maria"})
    storage.add_to_search_history("welding")
    assert storage.cache_size() > 0

    storage.clear_all()

    assert storage.cache_size() == 0
    assert storage.get_cached_user_profile() is None


@pytest.mark.unit
def test_store_offline_action_queues_fifo(storage, clock):
    first = storage.store_offline_action("post", "/user/service-request/r-1/accept-offer")
    clock.now += 5
    second = storage.store_offline_action("PUT", "/user/booking/b-1/complete", {"note": "done"})

    actions = storage.get_offline_actions()
    assert [a["id"] for a in actions] == [first["id"], second["id"]]
    assert actions[0]["method"] == "POST"
    assert actions[1]["body"] == {"note": "done"}
    assert actions[1]["timestamp"] == clock.now


@pytest.mark.unit
def test_replay_sends_with_action_id_as_idempotency_key(storage):
    action = storage.store_offline_action("POST", "/user/offer-to-provider", {"requestId": "r-1"})
    client = MagicMock()
    client.send.return_value = _response(200, {"success": True})

    report = storage.replay(client)

    client.send.assert_called_once_with(
        "POST",
        "/user/offer-to-provider",
        json={"requestId": "r-1"},
        idempotency_key=action["id"],
    )
    assert report.sent == [action["id"]]
    assert report.remaining == 0
    assert report.interrupted is False
    assert storage.get_last_sync() is not None


@pytest.mark.unit
def test_replay_drops_rejected_action_and_continues(storage):
    rejected = storage.store_offline_action("POST", "/user/service-request/r-1/accept-offer")
    accepted = storage.store_offline_action("PUT", "/user/booking/b-1/complete")
    client = MagicMock()
    client.send.side_effect = [
        _response(409, {"success": False, "message": "This offer is no longer waiting for a decision"}),
        _response(200),
    ]

    report = storage.replay(client)

    assert report.rejected == [{
        "id": rejected["id"],
        "status": 409,
        "message": "This offer is no longer waiting for a decision",
    }]
    assert report.sent == [accepted["id"]]
    assert storage.get_offline_actions() == []


@pytest.mark.unit
def test_replay_stops_on_transport_error(storage):
    storage.store_offline_action("POST", "/user/offer-to-provider", {"requestId": "r-1"})
    storage.store_offline_action("POST", "/user/offer-to-provider", {"requestId": "r-2"})
    client = MagicMock()
    client.send.side_effect = httpx.ConnectError("offline")

    report = storage.replay(client)

    assert report.interrupted is True
    assert report.remaining == 2
    assert client.send.call_count == 1
    assert storage.get_last_sync() is None


@pytest.mark.unit
def test_replay_stops_on_server_error_keeping_order(storage):
    first = storage.store_offline_action("POST", "/a")
    second = storage.store_offline_action("POST", "/b")
    third = storage.store_offline_action("POST", "/c")
    client = MagicMock()
    client.send.side_effect = [_response(201), _response(503), _response(200)]

    report = storage.replay(client)

    assert report.sent == [first["id"]]
    assert report.interrupted is True
    assert [a["id"] for a in storage.get_offline_actions()] == [second["id"], third["id"]]


@pytest.mark.unit
def test_replay_keeps_outbox_when_token_expired(storage):
    queued = [storage.store_offline_action("PUT", f"/user/booking/b-{i}/complete") for i in range(3)]
    client = MagicMock()
    client.send.return_value = _response(401, {"success": False, "message": "Invalid or expired token"})

    report = storage.replay(client)

    assert report.interrupted is True
    assert report.rejected == []
    assert report.remaining == 3
    assert client.send.call_count == 1
    assert [a["id"] for a in storage.get_offline_actions()] == [a["id"] for a in queued]
    assert storage.get_last_sync() is None


@pytest.mark.unit
@pytest.mark.parametrize("status_code", [403, 408, 429])
def test_replay_keeps_action_on_retryable_client_error(storage, status_code):
    action = storage.store_offline_action("POST", "/user/service-request/r-1/accept-offer")
    client = MagicMock()
    client.send.return_value = _response(status_code)

    report = storage.replay(client)

    assert report.interrupted is True
    assert [a["id"] for a in storage.get_offline_actions()] == [action["id"]]
