"""User profile upsert run after every successful sign-in."""

import logging

from app.entities.user_profile import UserPreferences, UserStats
from app.repositories.user_profile import UserProfileRepository
from app.services.identity.base import Identity
from app.store.base import SERVER_TIMESTAMP
from app.store.exceptions import StoreError, is_transient

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, profiles: UserProfileRepository):
        self.profiles = profiles

    async def upsert_profile(self, identity: Identity) -> None:
        """
        Create the profile on first sign-in, otherwise merge the login fields.

        Existing documents are merged, never replaced, so repositories,
        preferences and stats written elsewhere survive a login. An
        unreachable store is logged and ignored; sign-in does not depend on
        this write.
        """
        login_fields = {
            "uid": identity.uid,
            "email": identity.email,
            "display_name": identity.display_name,
            "photo_url": identity.photo_url,
            "last_login_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }

        try:
            if not await self.profiles.exists(identity.uid):
                stats = UserStats().model_dump()
                stats["last_active_at"] = SERVER_TIMESTAMP
                await self.profiles.create_profile(
                    identity.uid,
                    {
                        **login_fields,
                        "created_at": SERVER_TIMESTAMP,
                        "repositories": [],
                        "preferences": UserPreferences().model_dump(),
                        "stats": stats,
                    },
                )
                logger.info(f"Created user profile {identity.uid}")
            else:
                await self.profiles.merge_profile(identity.uid, login_fields)
                logger.info(f"Updated user profile {identity.uid}")
        except StoreError as exc:
            if is_transient(exc):
                logger.warning(
                    f"Store unavailable, continuing without profile update for {identity.uid}: {exc}"
                )
                return
            raise
