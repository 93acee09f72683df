"""
Async HTTP client for the RepairMate services.

Credentials live in an explicit ``Session`` handed to the client rather than
in process-wide storage. The session is populated on login or refresh and
purged on logout, or when a 401 persists after one refresh attempt.
"""

import logging
from dataclasses import dataclass

import httpx

from .errors import Unauthenticated, error_for_status

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0


@dataclass
class Session:
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def set(self, access_token: str, refresh_token: str | None = None):
        self.access_token = access_token
        if refresh_token is not None:
            self.refresh_token = refresh_token

    def clear(self):
        self.access_token = None
        self.refresh_token = None


def _unwrap(resp: httpx.Response):
    try:
        body = resp.json() if resp.content else {}
    except ValueError:
        body = {}

    if resp.is_success:
        return body.get("data")

    message = body.get("message") if isinstance(body, dict) else None
    raise error_for_status(resp.status_code, message or resp.reason_phrase)


class RepairMateClient:
    def __init__(
        self,
        auth_url: str,
        booking_url: str,
        session: Session | None = None,
        http: httpx.AsyncClient | None = None,
        request_id: str | None = None,
    ):
        self.auth_url = auth_url.rstrip("/")
        self.booking_url = booking_url.rstrip("/")
        self.session = session or Session()
        self.request_id = request_id
        self._http = http or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def _headers(self, authenticated: bool = True) -> dict:
        headers = {}
        if self.request_id:
            headers["X-Request-Id"] = self.request_id
        if authenticated and self.session.access_token:
            headers["Authorization"] = f"Bearer {self.session.access_token}"
        return headers

    # -------- AUTH --------

    async def register(self, data: dict) -> dict:
        resp = await self._http.post(f"{self.auth_url}/register", json=data, headers=self._headers(False))
        payload = _unwrap(resp)
        self.session.set(payload["accessToken"], payload["refreshToken"])
        return payload["user"]

    async def login(self, email: str, password: str) -> dict:
        resp = await self._http.post(
            f"{self.auth_url}/login",
            json={"email": email, "password": password},
            headers=self._headers(False),
        )
        payload = _unwrap(resp)
        self.session.set(payload["accessToken"], payload["refreshToken"])
        return payload["user"]

    def logout(self):
        self.session.clear()

    async def refresh(self) -> bool:
        if not self.session.refresh_token:
            return False

        resp = await self._http.post(
            f"{self.auth_url}/refresh",
            json={"refreshToken": self.session.refresh_token},
            headers=self._headers(False),
        )
        if not resp.is_success:
            logger.info(f"Token refresh rejected with {resp.status_code}")
            return False

        payload = _unwrap(resp)
        self.session.set(payload["accessToken"], payload["refreshToken"])
        return True

    async def me(self) -> dict:
        data = await self.request("GET", f"{self.auth_url}/me")
        return data["user"]

    async def request(self, method: str, url: str, json: dict | None = None, params: dict | None = None, headers: dict | None = None):
        """Send an authenticated request, refreshing the token once on 401."""
        resp = await self._send(method, url, json, params, headers)

        if resp.status_code == 401:
            if await self.refresh():
                resp = await self._send(method, url, json, params, headers)
            if resp.status_code == 401:
                self.session.clear()
                raise Unauthenticated("Session expired, please log in again")

        return _unwrap(resp)

    async def _send(self, method, url, json, params, headers):
        all_headers = self._headers()
        if headers:
            all_headers.update(headers)
        return await self._http.request(method, url, json=json, params=params, headers=all_headers)

    # -------- BOOKINGS --------

    async def create_booking(self, data: dict, idempotency_key: str | None = None) -> dict:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        payload = await self.request("POST", f"{self.booking_url}/bookings", json=data, headers=headers)
        return payload["booking"]

    async def get_booking(self, booking_id: str) -> dict:
        payload = await self.request("GET", f"{self.booking_url}/bookings/{booking_id}")
        return payload["booking"]

    async def my_bookings(self, status: str | None = None, page: int = 1, limit: int = 10) -> dict:
        params = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return await self.request("GET", f"{self.booking_url}/bookings/my", params=params)

    async def active_bookings(self) -> list[dict]:
        payload = await self.request("GET", f"{self.booking_url}/bookings/my/active")
        return payload["bookings"]

    async def open_jobs(self, service_type: str | None = None) -> list[dict]:
        params = {"serviceType": service_type} if service_type else None
        payload = await self.request("GET", f"{self.booking_url}/bookings/open", params=params)
        return payload["bookings"]

    async def assigned_jobs(self, status: str | None = None) -> list[dict]:
        params = {"status": status} if status else None
        payload = await self.request("GET", f"{self.booking_url}/bookings/assigned/me", params=params)
        return payload["bookings"]

    async def transition(self, booking_id: str, operation: str, data: dict | None = None) -> dict:
        payload = await self.request("PATCH", f"{self.booking_url}/bookings/{booking_id}/{operation}", json=data)
        return payload["booking"]
