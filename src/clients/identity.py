"""
Adapter for the remote identity service (dummyjson-style auth API).

The session manager only sees the ``IdentityService`` protocol: login, verify
(who-am-i) and refresh. Transport and status-code mapping live here so the
session manager deals only in the error taxonomy from ``utils.errors``.
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import requests

from db.models import TokenPair
from utils import config
from utils.errors import InvalidCredentials, NetworkUnavailable, TokenInvalidOrExpired
from utils.logger import get_logger

_logger = get_logger(__name__)

# Demo credentials for testing against dummyjson
DEMO_CREDENTIALS = [
    ("emilys", "emilyspass"),
    ("michaelw", "michaelwpass"),
    ("sophiab", "sophiabpass"),
]


class IdentityService(Protocol):
    async def login(self, username: str, password: str) -> tuple[TokenPair, Dict[str, Any]]: ...

    async def verify(self, access_token: str) -> Dict[str, Any]: ...

    async def refresh(self, refresh_token: str) -> TokenPair: ...


def _token_pair(data: Dict[str, Any]) -> TokenPair:
    access = data.get("accessToken") or data.get("token")
    if not access:
        raise NetworkUnavailable("Identity service response carried no token.")
    return TokenPair(access_token=access, refresh_token=data.get("refreshToken") or None)


class DummyJsonIdentity:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        ttl_mins: Optional[int] = None,
    ):
        self.base_url = (base_url or config.API_URL).rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT
        self.ttl_mins = ttl_mins or config.TOKEN_TTL_MINS
        self._http = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            _logger.warning(f"{method} {path} failed: {type(e).__name__}")
            raise NetworkUnavailable("Network error. Please try again.") from e
        if response.status_code >= 500:
            _logger.warning(f"{method} {path} returned {response.status_code}")
            raise NetworkUnavailable(
                "Identity service is unavailable. Please try again.",
                status=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise NetworkUnavailable(
                "Unexpected response from identity service.", status=response.status_code
            ) from e
        if not isinstance(data, dict):
            raise NetworkUnavailable(
                "Unexpected response from identity service.", status=response.status_code
            )
        return data

    def _login_sync(self, username: str, password: str) -> tuple[TokenPair, Dict[str, Any]]:
        response = self._request(
            "POST",
            "/auth/login",
            json={"username": username, "password": password, "expiresInMins": self.ttl_mins},
        )
        data = self._json(response)
        if not response.ok:
            raise InvalidCredentials(
                data.get("message") or "Login failed", status=response.status_code
            )
        return _token_pair(data), data

    def _verify_sync(self, access_token: str) -> Dict[str, Any]:
        response = self._request(
            "GET", "/auth/me", headers={"Authorization": f"Bearer {access_token}"}
        )
        if not response.ok:
            raise TokenInvalidOrExpired(
                "Access token rejected.", status=response.status_code
            )
        return self._json(response)

    def _refresh_sync(self, refresh_token: str) -> TokenPair:
        response = self._request(
            "POST",
            "/auth/refresh",
            json={"refreshToken": refresh_token, "expiresInMins": self.ttl_mins},
        )
        if not response.ok:
            raise TokenInvalidOrExpired(
                "Refresh token rejected.", status=response.status_code
            )
        return _token_pair(self._json(response))

    # requests is blocking; run it off the event loop
    async def login(self, username: str, password: str) -> tuple[TokenPair, Dict[str, Any]]:
        return await asyncio.to_thread(self._login_sync, username, password)

    async def verify(self, access_token: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._verify_sync, access_token)

    async def refresh(self, refresh_token: str) -> TokenPair:
        return await asyncio.to_thread(self._refresh_sync, refresh_token)
