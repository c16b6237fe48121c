import asyncio
import os
import sys
import unittest
from typing import Dict, Optional

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import Product, TokenPair
from db.store import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, InMemoryStore
from services.commerce import GUEST_SCOPE
from services.session import SessionManager, SessionState
from utils.errors import (
    ErrorKind,
    InvalidCredentials,
    NetworkUnavailable,
    TokenExpiredUnrecoverable,
    TokenInvalidOrExpired,
)
from utils.state import StorefrontState

PROFILE = {
    "id": 1,
    "username": "emilys",
    "email": "emily.johnson@x.dummyjson.com",
    "firstName": "Emily",
    "lastName": "Johnson",
    "phone": "+81 965-431-3024",
    "image": "https://dummyjson.com/icon/emilys/128",
    "address": {"address": "626 Main Street", "city": "Phoenix", "country": "United States"},
}


class FakeIdentity:
    """In-process identity service that counts calls.

    valid: access tokens that /auth/me accepts
    refresh_map: refresh token -> TokenPair handed out by /auth/refresh
    gate: when set, login/refresh wait on it (to force overlapping calls)
    """

    def __init__(self):
        self.valid: set[str] = set()
        self.refresh_map: Dict[str, TokenPair] = {}
        self.credentials = {"emilys": ("emilyspass", TokenPair("acc-1", "ref-1"))}
        self.calls = {"login": 0, "verify": 0, "refresh": 0}
        self.gate: Optional[asyncio.Event] = None
        self.network_down = False
        self.refresh_down = False
        self.reject_refreshed = False

    async def _maybe_wait(self):
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)

    async def login(self, username, password):
        self.calls["login"] += 1
        await self._maybe_wait()
        if self.network_down:
            raise NetworkUnavailable("Network error. Please try again.")
        expected = self.credentials.get(username)
        if expected is None or expected[0] != password:
            raise InvalidCredentials("Invalid credentials", status=400)
        pair = expected[1]
        self.valid.add(pair.access_token)
        return pair, dict(PROFILE, accessToken=pair.access_token)

    async def verify(self, access_token):
        self.calls["verify"] += 1
        await asyncio.sleep(0)
        if self.network_down:
            raise NetworkUnavailable("Network error. Please try again.")
        if access_token not in self.valid:
            raise TokenInvalidOrExpired("Access token rejected.", status=401)
        return dict(PROFILE)

    async def refresh(self, refresh_token):
        self.calls["refresh"] += 1
        await self._maybe_wait()
        await asyncio.sleep(0.01)
        if self.network_down or self.refresh_down:
            raise NetworkUnavailable("Network error. Please try again.")
        pair = self.refresh_map.get(refresh_token)
        if pair is None:
            raise TokenInvalidOrExpired("Refresh token rejected.", status=401)
        if not self.reject_refreshed:
            self.valid.add(pair.access_token)
        return pair


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.identity = FakeIdentity()
        self.session = SessionManager(self.identity, self.store)
        self.transitions = []
        self.session.add_listener(lambda state, _s: self.transitions.append(state))

    def persist_tokens(self, access="stale", refresh: Optional[str] = "ref-1"):
        self.store.set_json(ACCESS_TOKEN_KEY, access)
        if refresh:
            self.store.set_json(REFRESH_TOKEN_KEY, refresh)

    # ---------- bootstrap ----------

    async def test_bootstrap_without_tokens(self):
        self.assertIs(self.session.state, SessionState.BOOTSTRAPPING)
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(sum(self.identity.calls.values()), 0)

    async def test_bootstrap_with_valid_token(self):
        self.persist_tokens(access="acc-1")
        self.identity.valid.add("acc-1")
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.AUTHENTICATED)
        self.assertEqual(self.session.user.display_name, "Emily Johnson")
        self.assertEqual(self.session.access_token, "acc-1")
        self.assertEqual(self.identity.calls, {"login": 0, "verify": 1, "refresh": 0})
        self.assertEqual(self.store.get_json(USER_KEY)["username"], "emilys")

    async def test_bootstrap_refreshes_rejected_token(self):
        self.persist_tokens(access="stale", refresh="ref-1")
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2", "ref-2")

        state = await self.session.bootstrap()

        self.assertIs(state, SessionState.AUTHENTICATED)
        self.assertEqual(self.identity.calls, {"login": 0, "verify": 2, "refresh": 1})
        self.assertEqual(self.session.access_token, "acc-2")
        self.assertEqual(self.store.get_json(ACCESS_TOKEN_KEY), "acc-2")
        self.assertEqual(self.store.get_json(REFRESH_TOKEN_KEY), "ref-2")

    async def test_bootstrap_gives_up_when_refresh_fails(self):
        self.persist_tokens(access="stale", refresh="ref-bad")
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.identity.calls, {"login": 0, "verify": 1, "refresh": 1})
        self.assertEqual(self.store.keys(), [])
        self.assertIsNone(self.session.access_token)

    async def test_bootstrap_never_loops_on_bad_refreshed_token(self):
        self.persist_tokens(access="stale", refresh="ref-1")
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2")
        self.identity.reject_refreshed = True

        state = await self.session.bootstrap()

        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.identity.calls, {"login": 0, "verify": 2, "refresh": 1})
        self.assertEqual(self.store.keys(), [])

    async def test_bootstrap_rejected_without_refresh_token(self):
        self.persist_tokens(access="stale", refresh=None)
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.identity.calls["refresh"], 0)
        self.assertIsNone(self.store.get(ACCESS_TOKEN_KEY))

    async def test_bootstrap_lone_refresh_token_is_discarded(self):
        self.store.set_json(REFRESH_TOKEN_KEY, "ref-1")
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertIsNone(self.store.get(REFRESH_TOKEN_KEY))
        self.assertEqual(sum(self.identity.calls.values()), 0)

    async def test_bootstrap_offline_keeps_tokens(self):
        self.persist_tokens(access="acc-1")
        self.identity.network_down = True
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.UNAUTHENTICATED)
        # not proven invalid, so not thrown away
        self.assertEqual(self.store.get_json(ACCESS_TOKEN_KEY), "acc-1")
        self.assertIsNone(self.session.access_token)

    async def test_bootstrap_offline_refresh_keeps_tokens(self):
        self.persist_tokens(access="stale", refresh="ref-1")
        self.identity.refresh_down = True

        state = await self.session.bootstrap()

        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.identity.calls, {"login": 0, "verify": 1, "refresh": 1})
        self.assertEqual(self.store.get_json(ACCESS_TOKEN_KEY), "stale")
        self.assertEqual(self.store.get_json(REFRESH_TOKEN_KEY), "ref-1")
        self.assertIsNone(self.session.access_token)

        # a later start with the network back recovers the session
        self.identity.refresh_down = False
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2", "ref-2")
        again = SessionManager(self.identity, self.store)
        self.assertIs(await again.bootstrap(), SessionState.AUTHENTICATED)
        self.assertEqual(again.access_token, "acc-2")

    async def test_bootstrap_offline_reverify_keeps_refreshed_tokens(self):
        self.persist_tokens(access="stale", refresh="ref-1")
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2", "ref-2")
        verify = self.identity.verify

        async def offline_after_first(token):
            if self.identity.calls["verify"] >= 1:
                self.identity.calls["verify"] += 1
                raise NetworkUnavailable("Network error. Please try again.")
            return await verify(token)

        self.identity.verify = offline_after_first

        state = await self.session.bootstrap()

        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.identity.calls["verify"], 2)
        self.assertEqual(self.store.get_json(ACCESS_TOKEN_KEY), "acc-2")
        self.assertEqual(self.store.get_json(REFRESH_TOKEN_KEY), "ref-2")
        self.assertIsNone(self.session.access_token)

    async def test_bootstrap_runs_once(self):
        self.persist_tokens(access="acc-1")
        self.identity.valid.add("acc-1")
        results = await asyncio.gather(self.session.bootstrap(), self.session.bootstrap())
        await self.session.bootstrap()
        self.assertEqual(results, [SessionState.AUTHENTICATED] * 2)
        self.assertEqual(self.identity.calls["verify"], 1)

    async def test_malformed_persisted_token_is_ignored(self):
        self.store.set(ACCESS_TOKEN_KEY, "{broken")
        state = await self.session.bootstrap()
        self.assertIs(state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.identity.calls["verify"], 0)

    # ---------- login ----------

    async def test_login_success(self):
        result = await self.session.login("  emilys ", "emilyspass")
        self.assertTrue(result.success)
        self.assertEqual(result.user.id, "1")
        self.assertEqual(result.user.address, "626 Main Street, Phoenix, United States")
        self.assertTrue(self.session.is_authenticated)
        self.assertEqual(self.store.get_json(ACCESS_TOKEN_KEY), "acc-1")
        self.assertEqual(self.store.get_json(REFRESH_TOKEN_KEY), "ref-1")
        self.assertEqual(self.identity.calls, {"login": 1, "verify": 1, "refresh": 0})
        self.assertEqual(
            self.transitions, [SessionState.AUTHENTICATING, SessionState.AUTHENTICATED]
        )

    async def test_login_bad_credentials(self):
        result = await self.session.login("emilys", "wrong")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Invalid credentials")
        self.assertIs(result.kind, ErrorKind.INVALID_CREDENTIALS)
        self.assertIs(self.session.state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.store.keys(), [])

    async def test_login_network_error(self):
        self.identity.network_down = True
        result = await self.session.login("emilys", "emilyspass")
        self.assertFalse(result.success)
        self.assertIs(result.kind, ErrorKind.NETWORK_UNAVAILABLE)
        self.assertIn("try again", result.error)
        self.assertEqual(self.store.keys(), [])

    async def test_login_profile_fetch_failure_persists_nothing(self):
        async def reject(_token):
            raise TokenInvalidOrExpired("nope", status=401)

        self.identity.verify = reject
        result = await self.session.login("emilys", "emilyspass")
        self.assertFalse(result.success)
        self.assertEqual(self.store.keys(), [])
        self.assertIsNone(self.session.access_token)

    async def test_login_blank_input_skips_network(self):
        for username, password in (("", "x"), ("   ", "x"), ("emilys", "")):
            result = await self.session.login(username, password)
            self.assertFalse(result.success)
            self.assertIs(result.kind, ErrorKind.INVALID_CREDENTIALS)
        self.assertEqual(self.identity.calls["login"], 0)

    async def test_second_login_while_in_flight_is_rejected(self):
        self.identity.gate = asyncio.Event()
        first = asyncio.create_task(self.session.login("emilys", "emilyspass"))
        await asyncio.sleep(0)

        second = await self.session.login("emilys", "emilyspass")
        self.assertFalse(second.success)
        self.assertIn("already in progress", second.error)

        self.identity.gate.set()
        self.assertTrue((await first).success)
        self.assertEqual(self.identity.calls["login"], 1)

    # ---------- refresh ----------

    async def test_concurrent_refresh_is_single_flight(self):
        await self.session.login("emilys", "emilyspass")
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2", "ref-2")

        first, second = await asyncio.gather(self.session.refresh(), self.session.refresh())

        self.assertEqual(self.identity.calls["refresh"], 1)
        self.assertEqual(first, "acc-2")
        self.assertEqual(second, "acc-2")
        self.assertIs(self.session.state, SessionState.AUTHENTICATED)
        self.assertIn(SessionState.REFRESHING, self.transitions)

        # a later refresh is a new round trip
        self.identity.refresh_map["ref-2"] = TokenPair("acc-3")
        self.assertEqual(await self.session.refresh(), "acc-3")
        self.assertEqual(self.identity.calls["refresh"], 2)
        # refresh token kept when the service does not rotate it
        self.assertEqual(self.store.get_json(REFRESH_TOKEN_KEY), "ref-2")

    async def test_refresh_without_refresh_token(self):
        self.assertIsNone(await self.session.refresh())
        self.assertEqual(self.identity.calls["refresh"], 0)

    async def test_failed_refresh_keeps_state(self):
        await self.session.login("emilys", "emilyspass")
        self.assertIsNone(await self.session.refresh())
        self.assertIs(self.session.state, SessionState.AUTHENTICATED)
        self.assertEqual(self.session.access_token, "acc-1")

    async def test_refresh_result_discarded_after_logout(self):
        await self.session.login("emilys", "emilyspass")
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2")
        self.identity.gate = asyncio.Event()

        pending = asyncio.create_task(self.session.refresh())
        await asyncio.sleep(0)
        self.session.logout()
        self.identity.gate.set()

        self.assertIsNone(await pending)
        self.assertIsNone(self.session.access_token)
        self.assertIsNone(self.store.get(ACCESS_TOKEN_KEY))

    # ---------- authorized calls ----------

    async def test_authorized_refreshes_once_on_rejected_token(self):
        await self.session.login("emilys", "emilyspass")
        self.identity.valid.discard("acc-1")
        self.identity.refresh_map["ref-1"] = TokenPair("acc-2", "ref-2")

        user = await self.session.reload_profile()

        self.assertEqual(user.username, "emilys")
        self.assertEqual(self.session.access_token, "acc-2")
        self.assertEqual(self.identity.calls["refresh"], 1)

    async def test_authorized_unrecoverable_logs_out(self):
        await self.session.login("emilys", "emilyspass")
        self.identity.valid.clear()

        with self.assertRaises(TokenExpiredUnrecoverable):
            await self.session.reload_profile()
        self.assertIs(self.session.state, SessionState.UNAUTHENTICATED)
        self.assertEqual(self.store.keys(), [])

    async def test_authorized_offline_refresh_keeps_session(self):
        await self.session.login("emilys", "emilyspass")
        self.identity.valid.clear()
        self.identity.refresh_down = True

        with self.assertRaises(NetworkUnavailable):
            await self.session.reload_profile()
        self.assertIs(self.session.state, SessionState.AUTHENTICATED)
        self.assertEqual(self.store.get_json(REFRESH_TOKEN_KEY), "ref-1")
        # the public refresh still reports plain failure
        self.assertIsNone(await self.session.refresh())

    async def test_authorized_requires_login(self):
        with self.assertRaises(TokenExpiredUnrecoverable):
            await self.session.authorized(self.identity.verify)

    # ---------- logout ----------

    async def test_logout_clears_everything(self):
        await self.session.login("emilys", "emilyspass")
        old_id = self.session.session_id
        self.session.logout()
        self.assertIsNone(self.session.user)
        self.assertIsNone(self.session.access_token)
        self.assertFalse(self.session.is_authenticated)
        self.assertNotEqual(self.session.session_id, old_id)
        self.assertEqual(self.store.keys(), [])
        # no network effect
        self.assertEqual(self.identity.calls["login"], 1)
        # always succeeds, even twice
        self.session.logout()


class StorefrontStateTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.identity = FakeIdentity()
        self.state = StorefrontState.create(store=self.store, identity=self.identity)

    async def test_cart_is_scoped_per_user_and_cleared_on_logout(self):
        product = Product(id=5, title="Mug", price=12.0, stock=4)
        self.state.commerce.cart.add(product)  # guest cart

        await self.state.session.login("emilys", "emilyspass")
        self.assertEqual(self.state.commerce.scope, "1")
        self.assertEqual(len(self.state.commerce.cart), 0)

        self.state.commerce.cart.add(product, 2)
        self.state.commerce.wishlist.add(product)
        self.assertIsNotNone(self.store.get("cart.1"))

        self.state.logout()
        self.assertEqual(self.state.commerce.scope, GUEST_SCOPE)
        self.assertIsNone(self.store.get("cart.1"))
        self.assertIsNone(self.store.get("wishlist.1"))

        await self.state.session.login("emilys", "emilyspass")
        self.assertEqual(len(self.state.commerce.cart), 0)
        self.assertEqual(len(self.state.commerce.wishlist), 0)

    async def test_start_restores_user_collections(self):
        self.store.set_json(ACCESS_TOKEN_KEY, "acc-1")
        self.identity.valid.add("acc-1")
        self.store.set_json(
            "cart.1",
            [{"id": 1, "product": Product(id=5, title="Mug", price=12.0, stock=4).to_api(), "quantity": 3}],
        )

        self.assertIs(await self.state.start(), SessionState.AUTHENTICATED)
        self.assertEqual(self.state.commerce.cart.get(5).quantity, 3)
        self.assertAlmostEqual(self.state.commerce.summary().subtotal, 36)


if __name__ == "__main__":
    unittest.main()
