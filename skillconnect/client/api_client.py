"""
HTTP client for the SkillConnect user-flow API.

Thin wrapper over httpx used by the mobile-side tooling and by the offline
outbox replay. Every mutating call accepts an ``idempotency_key`` which is
sent as the ``Idempotency-Key`` header.
"""
from typing import Any, Dict, List, Optional

import httpx

from skillconnect.lib.logging import get_logger


logger = get_logger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class SkillConnectAPIError(Exception):
    """Raised for non-2xx responses."""

    def __init__(self, status_code: int, message: str, body: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.message = message
        self.body = body or {}
        super().__init__(f"{status_code}: {message}")


class SkillConnectClient:
    """
    Bearer-token client.

    Args:
        base_url: API root, e.g. ``http://127.0.0.1:8000``
        token: JWT from ``/auth/login``
        http: Optional pre-built ``httpx.Client`` (a FastAPI ``TestClient`` works)
        timeout: Request timeout in seconds when ``http`` is not given
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        token: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SkillConnectClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key
        return headers

    def send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> httpx.Response:
        """
        Send a raw request and return the response unchecked.

        Transport failures (``httpx.TransportError``) propagate.
        """
        return self._http.request(
            method.upper(),
            path,
            json=json,
            params=params,
            headers=self._headers(idempotency_key),
        )

    def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self.send(method, path, **kwargs)
        if response.is_success:
            return response.json()
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") or response.reason_phrase
        logger.warning(
            "SkillConnect API call failed",
            extra={"method": method, "path": path, "status_code": response.status_code},
        )
        raise SkillConnectAPIError(response.status_code, message, body)

    # Auth

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in and keep the returned token for later calls."""
        data = self._call("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    def me(self) -> Dict[str, Any]:
        return self._call("GET", "/auth/me")

    # Requests and offers

    def post_service_request(self, idempotency_key: Optional[str] = None, **fields) -> Dict[str, Any]:
        """Fields use the API's camelCase names (typeOfWork, preferredDate, ...)."""
        return self._call("POST", "/user/post-service-request", json=fields, idempotency_key=idempotency_key)

    def my_service_requests(self) -> Dict[str, Any]:
        return self._call("GET", "/user/my-service-requests")

    def get_service_request(self, request_id: str) -> Dict[str, Any]:
        return self._call("GET", f"/user/service-request/{request_id}")

    def cancel_service_request(
        self,
        request_id: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {"cancellationReason": reason} if reason else None
        return self._call(
            "DELETE",
            f"/user/service-request/{request_id}/cancel",
            json=body,
            idempotency_key=idempotency_key,
        )

    def offer_to_provider(
        self,
        request_id: str,
        provider_id: str,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._call(
            "POST",
            "/user/offer-to-provider",
            json={"requestId": request_id, "providerId": provider_id},
            idempotency_key=idempotency_key,
        )

    def accept_offer(self, request_id: str, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        return self._call(
            "POST", f"/user/service-request/{request_id}/accept-offer", idempotency_key=idempotency_key
        )

    def reject_offer(self, request_id: str, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        return self._call(
            "POST", f"/user/service-request/{request_id}/reject-offer", idempotency_key=idempotency_key
        )

    def available_service_requests(
        self,
        skills: Optional[List[str]] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if skills:
            params["skills"] = ",".join(skills)
        return self._call("GET", "/user/available-service-requests", params=params)

    # Bookings

    def bookings(self, status: Optional[str] = None) -> Dict[str, Any]:
        params = {"status": status} if status else None
        return self._call("GET", "/user/bookings", params=params)

    def complete_booking(self, booking_id: str, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        return self._call("PUT", f"/user/booking/{booking_id}/complete", idempotency_key=idempotency_key)

    # Providers

    def service_providers(self, skill: Optional[str] = None) -> Dict[str, Any]:
        params = {"skill": skill} if skill else None
        return self._call("GET", "/user/service-providers", params=params)
