"""
Saved Items Store for bookmarked experiences.

No change feed: only the signed-in user mutates this set, so the store is
refreshed on start and after each mutation.
"""

import asyncio
from collections.abc import Callable

from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.saved_domain import SavedItem
from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.notices import NoticeCenter
from livelocal.services.ratings_cache import RatingsCache, ratings_cache
from livelocal.services.remote.contract import (
    NoRowsError,
    RemoteDataService,
    RemoteServiceError,
    UniqueViolationError,
    decode_rows,
)
from livelocal.services.remote.filters import Order, eq
from livelocal.services.session import AuthSession
from livelocal.services.store_base import UserScopedStore

logger = get_logger(__name__)

SAVED_TABLE = "saved_experiences"
SAVED_COLUMNS = (
    "*,experiences(id,title,description,location,price,duration_hours,image_urls,"
    "profiles!fk_experiences_host_id(first_name,last_name))"
)


class SavedItemsStore(UserScopedStore):
    name = "saved"

    def __init__(
        self,
        remote: RemoteDataService,
        session: AuthSession,
        notices: NoticeCenter,
        sign_in_redirect: Callable[[], None] | None = None,
        ratings: RatingsCache = ratings_cache,
    ):
        self._sign_in_redirect = sign_in_redirect
        self._ratings = ratings
        self._mutation_lock = asyncio.Lock()
        super().__init__(remote, session, notices)

    def _reset_state(self) -> None:
        self.saved_items: list[SavedItem] = []

    async def _load(self) -> None:
        await self.fetch_saved()

    async def fetch_saved(self, surface_errors: bool = True) -> list[SavedItem]:
        user = self._user
        if user is None:
            return []
        generation = self._generation

        try:
            rows = await self._remote.select(
                SAVED_TABLE,
                [eq("user_id", user.id)],
                columns=SAVED_COLUMNS,
                order=Order("created_at", ascending=False),
            )
            items = decode_rows(SavedItem, rows, SAVED_TABLE)
        except NoRowsError:
            items = []
        except RemoteServiceError as e:
            logger.error("Error fetching saved experiences", error=str(e))
            if surface_errors and self._is_current(generation):
                self._notices.error("Error", "Failed to load saved experiences")
            return self.saved_items

        items = await self._attach_ratings(items)
        if self._is_current(generation):
            self.saved_items = items
        return items

    async def _attach_ratings(self, items: list[SavedItem]) -> list[SavedItem]:
        ids = {item.experience_id for item in items if item.experience is not None}
        if not ids:
            return items
        ratings = await self._ratings.get_ratings(ids)
        attached = []
        for item in items:
            rating = ratings.get(item.experience_id)
            if item.experience is not None and rating is not None:
                experience = item.experience.model_copy(
                    update={"average_rating": rating.average, "review_count": rating.count}
                )
                item = item.model_copy(update={"experience": experience})
            attached.append(item)
        return attached

    def is_saved(self, experience_id: str) -> bool:
        return any(item.experience_id == experience_id for item in self.saved_items)

    async def toggle_save(self, experience_id: str) -> bool:
        """
        Save or unsave an experience.

        Returns:
            True if the saved state changed on the server
        """
        if self._user is None:
            self._notices.error("Please log in", "You need to be logged in to save experiences")
            if self._sign_in_redirect is not None:
                self._sign_in_redirect()
            return False

        async with self._mutation_lock:
            # Signed out while waiting for an earlier toggle
            user = self._user
            if user is None:
                return False
            if self.is_saved(experience_id):
                return await self._remove(user, experience_id)
            return await self._save(user, experience_id)

    async def remove_saved_experience(self, experience_id: str) -> bool:
        if self._user is None:
            return False
        async with self._mutation_lock:
            user = self._user
            if user is None:
                return False
            return await self._remove(user, experience_id)

    async def _save(self, user: AuthUser, experience_id: str) -> bool:
        try:
            await self._remote.insert(
                SAVED_TABLE, {"user_id": user.id, "experience_id": experience_id}
            )
        except UniqueViolationError:
            logger.info("Experience already saved", experience_id=experience_id)
            self._notices.error("Already saved", "This experience is already in your saved list")
            await self.fetch_saved(surface_errors=False)
            return False
        except RemoteServiceError as e:
            logger.error("Error saving experience", experience_id=experience_id, error=str(e))
            self._notices.error("Error", "Failed to update saved experience")
            return False

        # Refetch to pick up the joined experience details
        await self.fetch_saved(surface_errors=False)
        self._notices.show("Saved successfully", "Experience has been added to your saved list")
        return True

    async def _remove(self, user: AuthUser, experience_id: str) -> bool:
        generation = self._generation
        try:
            await self._remote.delete(
                SAVED_TABLE, [eq("user_id", user.id), eq("experience_id", experience_id)]
            )
        except RemoteServiceError as e:
            logger.error(
                "Error removing saved experience", experience_id=experience_id, error=str(e)
            )
            self._notices.error("Error", "Failed to remove saved experience")
            return False

        if self._is_current(generation):
            self.saved_items = [i for i in self.saved_items if i.experience_id != experience_id]
        self._notices.show("Removed from saved", "Experience has been removed from your saved list")
        return True
