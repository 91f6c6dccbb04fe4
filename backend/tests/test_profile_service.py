import unittest

from fakes import InMemoryStore

from app.repositories.user_profile import UserProfileRepository
from app.services.identity.base import Identity
from app.services.profile_service import ProfileService
from app.store.exceptions import StorePermissionError, StoreUnavailableError


class TestProfileService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = InMemoryStore()
        self.profiles = UserProfileRepository(self.store)
        self.service = ProfileService(self.profiles)
        self.identity = Identity(
            uid="gh-1", email="octo@example.com", display_name="Octo", photo_url="https://a/1.png"
        )

    async def test_first_sign_in_creates_profile_with_defaults(self):
        await self.service.upsert_profile(self.identity)

        profile = await self.profiles.find_by_uid("gh-1")
        self.assertEqual(profile.email, "octo@example.com")
        self.assertEqual(profile.repositories, [])
        self.assertEqual(profile.preferences.theme, "light")
        self.assertTrue(profile.preferences.notifications)
        self.assertFalse(profile.preferences.email_updates)
        self.assertEqual(profile.stats.total_repos, 0)
        self.assertIsNotNone(profile.stats.last_active_at)
        self.assertIsNotNone(profile.created_at)
        self.assertIsNotNone(profile.last_login_at)

    async def test_repeat_sign_in_merges_instead_of_replacing(self):
        self.store.put(
            "users",
            "gh-1",
            {
                "uid": "gh-1",
                "email": "old@example.com",
                "display_name": "Old",
                "repositories": ["repositories-9"],
                "preferences": {"theme": "dark", "notifications": False, "email_updates": True},
                "stats": {"total_repos": 3, "total_docs": 12},
                "created_at": "2023-05-01T00:00:00Z",
            },
        )

        await self.service.upsert_profile(self.identity)

        raw = self.store.collections["users"]["gh-1"]
        self.assertEqual(raw["email"], "octo@example.com")
        self.assertEqual(raw["display_name"], "Octo")
        self.assertEqual(raw["repositories"], ["repositories-9"])
        self.assertEqual(raw["preferences"]["theme"], "dark")
        self.assertEqual(raw["stats"]["total_docs"], 12)
        self.assertEqual(raw["created_at"], "2023-05-01T00:00:00Z")
        self.assertIn("last_login_at", raw)

    async def test_unreachable_store_is_ignored(self):
        self.store.fail("get", StoreUnavailableError("offline"))
        await self.service.upsert_profile(self.identity)
        self.assertNotIn("gh-1", self.store.collections["users"])

    async def test_permission_error_is_raised(self):
        self.store.fail("set", StorePermissionError("rules rejected write"))
        with self.assertRaises(StorePermissionError):
            await self.service.upsert_profile(self.identity)


if __name__ == "__main__":
    unittest.main()
