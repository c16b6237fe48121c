"""
Session manager: owns the bearer token, the optional refresh token and the
user profile derived from the identity service.

A token found in the store is never trusted until the identity service has
confirmed it once in this process. Refreshes are single-flight per session id,
so concurrent callers that each saw an expired token share one round trip.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from clients.identity import IdentityService
from db.models import UserProfile
from db.store import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, Store
from utils.errors import (
    ErrorKind,
    InvalidCredentials,
    NetworkUnavailable,
    StorefrontError,
    TokenExpiredUnrecoverable,
    TokenInvalidOrExpired,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

T = TypeVar("T")


class SessionState(str, Enum):
    BOOTSTRAPPING = "bootstrapping"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"  # still authenticated, new token in flight


@dataclass(frozen=True)
class LoginResult:
    success: bool
    user: Optional[UserProfile] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None


SessionListener = Callable[[SessionState, "SessionManager"], None]


class SessionManager:
    def __init__(self, identity: IdentityService, store: Store):
        self._identity = identity
        self._store = store

        self._state = SessionState.BOOTSTRAPPING
        self._user: Optional[UserProfile] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._session_id = uuid.uuid4().hex

        self._bootstrap_task: Optional[asyncio.Task] = None
        self._login_in_flight = False
        self._refreshes: Dict[str, asyncio.Task] = {}
        self._listeners: List[SessionListener] = []

    # ---------------------------
    # Read-only view
    # ---------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[UserProfile]:
        return self._user

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_authenticated(self) -> bool:
        return self._state in (SessionState.AUTHENTICATED, SessionState.REFRESHING)

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: SessionState, force: bool = False) -> None:
        if state is self._state and not force:
            return
        _logger.debug(f"Session {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state, self)
            except Exception:
                _logger.exception(f"Session listener {listener!r} failed")

    # ---------------------------
    # Persistence
    # ---------------------------

    def _persist(self) -> None:
        self._store.set_json(ACCESS_TOKEN_KEY, self._access_token)
        if self._refresh_token:
            self._store.set_json(REFRESH_TOKEN_KEY, self._refresh_token)
        else:
            self._store.remove(REFRESH_TOKEN_KEY)
        if self._user is not None:
            self._store.set_json(USER_KEY, self._user.to_dict())

    def _forget(self) -> None:
        """Drop the session from memory and from the store."""
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY):
            self._store.remove(key)
        self._user = None
        self._access_token = None
        self._refresh_token = None
        # results of refreshes still in flight for the old id are discarded
        self._session_id = uuid.uuid4().hex

    def _read_token(self, key: str) -> Optional[str]:
        value = self._store.get_json(key)
        return value if isinstance(value, str) and value else None

    # ---------------------------
    # Lifecycle
    # ---------------------------

    async def bootstrap(self) -> SessionState:
        """Rehydrate and re-verify the persisted session. Runs once per process."""
        if self._bootstrap_task is None:
            self._bootstrap_task = asyncio.ensure_future(self._bootstrap())
        return await self._bootstrap_task

    async def _bootstrap(self) -> SessionState:
        access = self._read_token(ACCESS_TOKEN_KEY)
        refresh = self._read_token(REFRESH_TOKEN_KEY)

        if access is None:
            if refresh is not None:
                _logger.info("Discarding refresh token persisted without an access token.")
                self._forget()
            self._set_state(SessionState.UNAUTHENTICATED)
            return self._state

        self._refresh_token = refresh
        try:
            profile = await self._identity.verify(access)
        except TokenInvalidOrExpired:
            profile = None
        except NetworkUnavailable as e:
            return self._settle_offline(e)

        if profile is None:
            if self._refresh_token is None:
                _logger.info("Stored access token rejected and no refresh token; signing out.")
                return self._give_up()

            try:
                access = await self._shared_refresh()
            except NetworkUnavailable as e:
                return self._settle_offline(e)
            if access is None:
                return self._give_up()
            try:
                profile = await self._identity.verify(access)
            except NetworkUnavailable as e:
                return self._settle_offline(e)
            except StorefrontError as e:
                _logger.warning(f"Refreshed token failed verification: {e.message}")
                return self._give_up()

        self._access_token = access
        self._user = UserProfile.from_remote(profile)
        self._persist()
        _logger.info(f"Restored session for {self._user.display_name or self._user.id}.")
        self._set_state(SessionState.AUTHENTICATED, force=True)
        return self._state

    def _settle_offline(self, error: NetworkUnavailable) -> SessionState:
        # tokens were not proven bad; keep them in the store for the next start
        _logger.warning(f"Could not verify stored session: {error.message}")
        self._access_token = None
        self._refresh_token = None
        self._set_state(SessionState.UNAUTHENTICATED)
        return self._state

    def _give_up(self) -> SessionState:
        self._forget()
        self._set_state(SessionState.UNAUTHENTICATED)
        return self._state

    async def login(self, username: str, password: str) -> LoginResult:
        """
        Exchange credentials for tokens and load the profile.

        Never raises for credential or network problems; the result carries a
        message suitable for an inline form error. Nothing is persisted unless
        both the login and the profile fetch succeed.
        """
        if self._login_in_flight:
            return LoginResult(success=False, error="A login is already in progress.")

        username = (username or "").strip()
        if not username or not password:
            return LoginResult(
                success=False,
                error="Username and password are required.",
                kind=ErrorKind.INVALID_CREDENTIALS,
            )

        self._login_in_flight = True
        prior = self._state
        self._set_state(SessionState.AUTHENTICATING)
        try:
            pair, _ = await self._identity.login(username, password)
            profile = await self._identity.verify(pair.access_token)
        except InvalidCredentials as e:
            return self._login_failed(prior, e.message, e.kind)
        except NetworkUnavailable as e:
            return self._login_failed(prior, e.message, e.kind)
        except TokenInvalidOrExpired:
            return self._login_failed(
                prior,
                "Login failed. Please check your credentials.",
                ErrorKind.INVALID_CREDENTIALS,
            )
        finally:
            self._login_in_flight = False

        self._session_id = uuid.uuid4().hex
        self._access_token = pair.access_token
        self._refresh_token = pair.refresh_token
        self._user = UserProfile.from_remote(profile)
        self._persist()
        _logger.info(f"Logged in as {self._user.username or self._user.id}.")
        self._set_state(SessionState.AUTHENTICATED, force=True)
        return LoginResult(success=True, user=self._user)

    def _login_failed(self, prior: SessionState, message: str, kind: ErrorKind) -> LoginResult:
        _logger.info(f"Login failed: {message}")
        if prior in (SessionState.AUTHENTICATED, SessionState.REFRESHING):
            self._set_state(SessionState.AUTHENTICATED)
        else:
            self._set_state(SessionState.UNAUTHENTICATED)
        return LoginResult(success=False, error=message, kind=kind)

    async def refresh(self) -> Optional[str]:
        """
        Mint a new access token from the refresh token. Returns the token, or
        None when there is nothing to refresh with or the exchange failed.
        Concurrent callers share one in-flight exchange.
        """
        try:
            return await self._shared_refresh()
        except NetworkUnavailable:
            return None

    async def _shared_refresh(self) -> Optional[str]:
        """Like refresh(), but an unreachable identity service raises NetworkUnavailable."""
        key = self._session_id
        task = self._refreshes.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(key))
            self._refreshes[key] = task
            task.add_done_callback(lambda t, k=key: self._drop_refresh(k, t))
        return await task

    def _drop_refresh(self, key: str, task: asyncio.Task) -> None:
        if self._refreshes.get(key) is task:
            del self._refreshes[key]

    async def _refresh(self, session_id: str) -> Optional[str]:
        refresh_token = self._refresh_token
        if not refresh_token:
            _logger.debug("No refresh token; cannot refresh.")
            return None

        was_authenticated = self.is_authenticated
        if was_authenticated:
            self._set_state(SessionState.REFRESHING)
        try:
            pair = await self._identity.refresh(refresh_token)
        except StorefrontError as e:
            _logger.warning(f"Token refresh failed: {e.message}")
            if was_authenticated and session_id == self._session_id:
                self._set_state(SessionState.AUTHENTICATED)
            if isinstance(e, NetworkUnavailable):
                raise
            return None

        if session_id != self._session_id:
            _logger.info("Session changed during refresh; discarding the new token.")
            return None

        self._access_token = pair.access_token
        if pair.refresh_token:
            self._refresh_token = pair.refresh_token
        self._persist()
        _logger.debug("Access token refreshed.")
        if was_authenticated:
            self._set_state(SessionState.AUTHENTICATED)
        return pair.access_token

    def logout(self) -> None:
        """Forget the session locally. No remote call is made."""
        if self._user is not None:
            _logger.info(f"Logging out {self._user.username or self._user.id}.")
        self._forget()
        self._set_state(SessionState.UNAUTHENTICATED, force=True)

    # ---------------------------
    # Authenticated calls
    # ---------------------------

    async def authorized(self, call: Callable[[str], Awaitable[T]]) -> T:
        """
        Run call(access_token). On a rejected token refresh once and retry;
        if that fails too the session is dropped and TokenExpiredUnrecoverable raised.
        NetworkUnavailable propagates and leaves the session alone.
        """
        token = self._access_token
        if token is None:
            raise TokenExpiredUnrecoverable("Not signed in.")
        try:
            return await call(token)
        except TokenInvalidOrExpired:
            _logger.info("Access token rejected; refreshing.")

        token = await self._shared_refresh()
        if token is None:
            self.logout()
            raise TokenExpiredUnrecoverable("Session expired. Please log in again.")
        try:
            return await call(token)
        except TokenInvalidOrExpired as e:
            self.logout()
            raise TokenExpiredUnrecoverable("Session expired. Please log in again.") from e

    async def reload_profile(self) -> Optional[UserProfile]:
        """Re-fetch the profile with the current token (refreshing if needed)."""
        profile: Dict[str, Any] = await self.authorized(self._identity.verify)
        self._user = UserProfile.from_remote(profile)
        self._store.set_json(USER_KEY, self._user.to_dict())
        return self._user
