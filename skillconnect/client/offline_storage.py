"""
Offline cache and outbox for the mobile client.

Everything lives in a single JSON file. Cached request and provider lists
expire 24 hours after they were written; the user profile, search history and
outbox never expire.

Outbox actions carry a client-generated ``id`` that doubles as the
``Idempotency-Key`` on replay, so an action whose response was lost is applied
once by the server and answered from its stored result the second time.
"""
import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

import httpx

from skillconnect.client.api_client import SkillConnectClient
from skillconnect.lib.logging import get_logger


logger = get_logger(__name__)

CACHE_TTL_SECONDS = 24 * 60 * 60
SEARCH_HISTORY_LIMIT = 20

# Storage keys
CACHED_REQUESTS = "cached_service_requests"
CACHED_PROVIDERS = "cached_service_providers"
OFFLINE_ACTIONS = "offline_actions"
USER_PROFILE = "user_profile"
SEARCH_HISTORY = "search_history"
LAST_SYNC = "last_sync_timestamp"

STORAGE_KEYS = (
    CACHED_REQUESTS,
    CACHED_PROVIDERS,
    OFFLINE_ACTIONS,
    USER_PROFILE,
    SEARCH_HISTORY,
    LAST_SYNC,
)

# Statuses that say "not now" rather than "never"; the action stays queued.
RETRYABLE_STATUSES = frozenset({401, 403, 408, 429})


@dataclass
class ReplayReport:
    """Outcome of one outbox replay."""
    sent: List[str] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    remaining: int = 0
    interrupted: bool = False


class OfflineStorage:
    """
    JSON-file key/value store.

    Args:
        path: File holding the store; created on first write
        clock: Returns the current time in epoch seconds
    """

    def __init__(self, path: Union[str, Path], clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock

    # Raw access

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh)
        os.replace(tmp_path, self.path)

    def _get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def _set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def _remove(self, *keys: str) -> None:
        data = self._load()
        for key in keys:
            data.pop(key, None)
        self._save(data)

    # TTL caches

    def _cache(self, key: str, items: Any) -> None:
        now = self._clock()
        self._set(key, {"data": items, "timestamp": now, "expiresAt": now + CACHE_TTL_SECONDS})

    def _cached(self, key: str) -> Optional[Any]:
        entry = self._get(key)
        if entry is None:
            return None
        if entry["expiresAt"] > self._clock():
            return entry["data"]
        self._remove(key)
        return None

    def cache_service_requests(self, requests: List[Dict[str, Any]]) -> None:
        self._cache(CACHED_REQUESTS, requests)

    def get_cached_service_requests(self) -> Optional[List[Dict[str, Any]]]:
        """Cached requests, or None when absent or expired."""
        return self._cached(CACHED_REQUESTS)

    def cache_service_providers(self, providers: List[Dict[str, Any]]) -> None:
        self._cache(CACHED_PROVIDERS, providers)

    def get_cached_service_providers(self) -> Optional[List[Dict[str, Any]]]:
        return self._cached(CACHED_PROVIDERS)

    # Profile

    def cache_user_profile(self, profile: Dict[str, Any]) -> None:
        self._set(USER_PROFILE, {"data": profile, "timestamp": self._clock()})

    def get_cached_user_profile(self) -> Optional[Dict[str, Any]]:
        entry = self._get(USER_PROFILE)
        return entry["data"] if entry else None

    # Search history

    def add_to_search_history(self, term: str) -> List[str]:
        """Move ``term`` to the front, dropping duplicates and anything past the limit."""
        history = [term] + [t for t in self.get_search_history() if t != term]
        history = history[:SEARCH_HISTORY_LIMIT]
        self._set(SEARCH_HISTORY, history)
        return history

    def get_search_history(self) -> List[str]:
        return self._get(SEARCH_HISTORY, [])

    def clear_search_history(self) -> None:
        self._remove(SEARCH_HISTORY)

    # Sync bookkeeping

    def update_last_sync(self) -> float:
        now = self._clock()
        self._set(LAST_SYNC, now)
        return now

    def get_last_sync(self) -> Optional[float]:
        return self._get(LAST_SYNC)

    def clear_all(self) -> None:
        self._remove(*STORAGE_KEYS)

    def cache_size(self) -> int:
        """Approximate size: total length of the serialized stored values."""
        data = self._load()
        return sum(len(json.dumps(data[key])) for key in STORAGE_KEYS if key in data)

    # Outbox

    def store_offline_action(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Queue a mutating call made while offline.

        Returns:
            The stored action; its ``id`` is the idempotency key used on replay
        """
        action = {
            "id": str(uuid4()),
            "timestamp": self._clock(),
            "method": method.upper(),
            "path": path,
            "body": body,
        }
        actions = self.get_offline_actions()
        actions.append(action)
        self._set(OFFLINE_ACTIONS, actions)
        logger.info("Queued offline action", extra={"action_id": action["id"], "path": path})
        return action

    def get_offline_actions(self) -> List[Dict[str, Any]]:
        """Pending actions, oldest first."""
        return self._get(OFFLINE_ACTIONS, [])

    def remove_offline_action(self, action_id: str) -> None:
        actions = [a for a in self.get_offline_actions() if a["id"] != action_id]
        self._set(OFFLINE_ACTIONS, actions)

    def clear_offline_actions(self) -> None:
        self._remove(OFFLINE_ACTIONS)

    def replay(self, client: SkillConnectClient) -> ReplayReport:
        """
        Send pending actions in FIFO order.

        An action leaves the outbox when the server answers 2xx (including a
        replayed stored response) or rejects it with a 4xx. A transport error, a
        5xx, or an auth, timeout or rate-limit answer (401, 403, 408, 429) keeps
        the action queued and stops the replay so later actions never overtake it.
        """
        report = ReplayReport()
        for action in self.get_offline_actions():
            try:
                response = client.send(
                    action["method"],
                    action["path"],
                    json=action.get("body"),
                    idempotency_key=action["id"],
                )
            except httpx.TransportError as exc:
                logger.warning(
                    f"Outbox replay interrupted: {exc}",
                    extra={"action_id": action["id"]},
                )
                report.interrupted = True
                break

            if response.is_success:
                self.remove_offline_action(action["id"])
                report.sent.append(action["id"])
                continue

            if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_STATUSES:
                try:
                    message = response.json().get("message")
                except ValueError:
                    message = response.reason_phrase
                self.remove_offline_action(action["id"])
                report.rejected.append({
                    "id": action["id"],
                    "status": response.status_code,
                    "message": message,
                })
                logger.warning(
                    "Outbox action rejected",
                    extra={"action_id": action["id"], "status_code": response.status_code},
                )
                continue

            logger.warning(
                "Outbox replay interrupted",
                extra={"action_id": action["id"], "status_code": response.status_code},
            )
            report.interrupted = True
            break

        report.remaining = len(self.get_offline_actions())
        if report.remaining == 0:
            self.update_last_sync()
        return report
