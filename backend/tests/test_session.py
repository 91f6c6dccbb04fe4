import unittest
from unittest.mock import AsyncMock, MagicMock

from fakes import FakeIdentityProvider, settle

from app.services.identity.base import Identity, IdentityProviderError
from app.services.session import (
    PROFILE_SAVE_FAILED,
    SIGN_IN_MESSAGES,
    SIGN_OUT_FAILED,
    SessionContext,
    SignInError,
    SignInErrorKind,
    map_sign_in_error,
)
from app.store.exceptions import StorePermissionError


class TestSignInErrorMapping(unittest.TestCase):
    def test_known_provider_codes(self):
        cases = {
            "popup-closed-by-user": SignInErrorKind.POPUP_CLOSED,
            "popup-blocked": SignInErrorKind.POPUP_BLOCKED,
            "cancelled-popup-request": SignInErrorKind.CONCURRENT_POPUP,
            "unauthorized-domain": SignInErrorKind.UNAUTHORIZED_ORIGIN,
            "operation-not-allowed": SignInErrorKind.PROVIDER_DISABLED,
        }
        for code, kind in cases.items():
            with self.subTest(code=code):
                error = map_sign_in_error(code)
                self.assertEqual(error.kind, kind)
                self.assertEqual(error.message, SIGN_IN_MESSAGES[kind])
                self.assertEqual(error.provider_code, code)

    def test_unknown_codes_fall_back_to_generic_message(self):
        for code in ("internal-error", "network-request-failed", None):
            with self.subTest(code=code):
                error = map_sign_in_error(code)
                self.assertEqual(error.kind, SignInErrorKind.UNKNOWN)
                self.assertEqual(error.message, "Failed to sign in with GitHub")

    def test_messages_are_distinct(self):
        self.assertEqual(len(set(SIGN_IN_MESSAGES.values())), len(SignInErrorKind))


class TestSessionContext(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.provider = FakeIdentityProvider()
        self.profiles = MagicMock()
        self.profiles.upsert_profile = AsyncMock()
        self.session = SessionContext(self.provider, self.profiles)

    async def asyncTearDown(self):
        self.session.close()

    async def test_start_replays_signed_out_state(self):
        self.assertTrue(self.session.is_loading)
        self.session.start()
        self.assertFalse(self.session.is_loading)
        self.assertIsNone(self.session.current_identity)
        self.profiles.upsert_profile.assert_not_awaited()

    async def test_start_with_restored_identity_upserts_profile(self):
        identity = Identity(uid="gh-7", login="restored")
        self.provider.identity = identity
        self.session.start()
        await settle()

        self.assertEqual(self.session.current_identity, identity)
        self.profiles.upsert_profile.assert_awaited_once_with(identity)

    async def test_start_twice_is_rejected(self):
        self.session.start()
        with self.assertRaises(RuntimeError):
            self.session.start()

    async def test_close_releases_listener_once(self):
        self.session.start()
        self.assertEqual(len(self.provider.listeners), 1)
        self.session.close()
        self.session.close()
        self.assertEqual(self.provider.listeners, [])

    async def test_sign_in_sets_identity_and_saves_profile(self):
        self.session.start()
        identity = await self.session.sign_in()

        self.assertEqual(identity.uid, "gh-1")
        self.assertEqual(self.session.current_identity, identity)
        self.assertEqual(self.session.credential.access_token, "gho_test")
        self.assertIsNone(self.session.last_error)
        self.profiles.upsert_profile.assert_awaited_once_with(identity)

    async def test_sign_in_failure_maps_provider_code(self):
        self.session.start()
        self.provider.next_error = IdentityProviderError("popup-blocked", "blocked")

        with self.assertRaises(SignInError) as ctx:
            await self.session.sign_in()

        self.assertEqual(ctx.exception.kind, SignInErrorKind.POPUP_BLOCKED)
        self.assertEqual(
            self.session.last_error, SIGN_IN_MESSAGES[SignInErrorKind.POPUP_BLOCKED]
        )
        self.assertIsNone(self.session.current_identity)
        self.assertFalse(self.session.is_loading)

    async def test_unexpected_provider_failure_maps_to_unknown(self):
        self.session.start()
        self.provider.next_error = RuntimeError("no browser available")

        with self.assertRaises(SignInError) as ctx:
            await self.session.sign_in()

        self.assertEqual(ctx.exception.kind, SignInErrorKind.UNKNOWN)
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(self.session.last_error, SIGN_IN_MESSAGES[SignInErrorKind.UNKNOWN])
        self.assertFalse(self.session.is_loading)

    async def test_next_sign_in_clears_previous_error(self):
        self.session.start()
        self.provider.next_error = IdentityProviderError("popup-closed-by-user")
        with self.assertRaises(SignInError):
            await self.session.sign_in()

        await self.session.sign_in()
        self.assertIsNone(self.session.last_error)

    async def test_profile_failure_keeps_identity_signed_in(self):
        self.profiles.upsert_profile.side_effect = StorePermissionError("denied")
        self.session.start()

        with self.assertRaises(StorePermissionError):
            await self.session.sign_in()
        await settle()

        self.assertIsNotNone(self.session.current_identity)
        self.assertEqual(self.session.last_error, PROFILE_SAVE_FAILED)

    async def test_sign_out_clears_identity(self):
        self.session.start()
        await self.session.sign_in()
        await self.session.sign_out()

        self.assertIsNone(self.session.current_identity)
        self.assertIsNone(self.session.credential)

    async def test_sign_out_failure_sets_message(self):
        self.session.start()
        await self.session.sign_in()
        self.provider.sign_out_error = RuntimeError("network")

        with self.assertRaises(RuntimeError):
            await self.session.sign_out()

        self.assertEqual(self.session.last_error, SIGN_OUT_FAILED)
        self.assertIsNotNone(self.session.current_identity)


if __name__ == "__main__":
    unittest.main()
