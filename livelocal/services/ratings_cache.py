"""
Process-wide ratings aggregation cache.

Many listing cards ask for the same experiences' ratings at once. The cache
collapses those lookups into one batched `reviews` query per distinct set of
stale ids, shares in-flight queries between identical concurrent requests,
and keeps results for a fixed TTL.
"""

import asyncio
import time
from collections import defaultdict
from collections.abc import Callable, Iterable

from livelocal.config import settings
from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.rating_domain import (
    RatingCacheEntry,
    RatingRow,
    RatingSummary,
    summarize_ratings,
)
from livelocal.services.remote.contract import (
    RemoteDataService,
    RemoteServiceError,
    RowDecodeError,
    decode_row,
)
from livelocal.services.remote.filters import in_

logger = get_logger(__name__)

REVIEWS_TABLE = "reviews"


class RatingsCache:
    def __init__(
        self,
        remote: RemoteDataService | None = None,
        ttl_seconds: float = settings.RATINGS_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._remote = remote
        self._ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._entries: dict[str, RatingCacheEntry] = {}
        self._in_flight: dict[str, asyncio.Future] = {}

    def bind(self, remote: RemoteDataService) -> None:
        """Attach the remote service (done once by the client at start-up)."""
        self._remote = remote

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def peek(self, entity_id: str) -> RatingCacheEntry | None:
        return self._entries.get(entity_id)

    def clear(self) -> None:
        self._entries.clear()
        self._in_flight.clear()

    async def get_ratings(self, entity_ids: Iterable[str]) -> dict[str, RatingSummary]:
        """
        Return {entity_id: RatingSummary} for the requested ids.

        Fresh entries are served from memory. All stale or missing ids are
        fetched in a single batch; a failed fetch is not cached and only the
        fresh subset is returned.
        """
        ids = sorted(set(entity_ids))
        if not ids:
            return {}

        now_ms = self._now_ms()
        fresh: dict[str, RatingSummary] = {}
        stale: list[str] = []
        for entity_id in ids:
            entry = self._entries.get(entity_id)
            if entry is not None and entry.is_fresh(now_ms, self._ttl_ms):
                fresh[entity_id] = entry.summary()
            else:
                stale.append(entity_id)

        if not stale:
            return fresh

        batch = self._shared_fetch(stale)
        try:
            # A cancelled caller must not cancel the fetch for everyone else
            fetched = await asyncio.shield(batch)
        except RemoteServiceError as e:
            logger.warning("Batch ratings fetch failed", ids=len(stale), error=str(e))
            return fresh

        return {**fresh, **{entity_id: fetched[entity_id] for entity_id in stale}}

    def _shared_fetch(self, stale: list[str]) -> asyncio.Future:
        key = ",".join(stale)
        task = self._in_flight.get(key)
        if task is not None:
            logger.debug("Joining in-flight ratings fetch", ids=len(stale))
            return task

        task = asyncio.ensure_future(self._fetch_batch(stale))
        self._in_flight[key] = task

        def _forget(done: asyncio.Future) -> None:
            if self._in_flight.get(key) is done:
                del self._in_flight[key]
            # Mark the exception retrieved; every awaiting caller already saw it
            if not done.cancelled():
                done.exception()

        task.add_done_callback(_forget)
        return task

    async def _fetch_batch(self, entity_ids: list[str]) -> dict[str, RatingSummary]:
        if self._remote is None:
            raise RuntimeError("RatingsCache is not bound to a remote service")

        rows = await self._remote.select(
            REVIEWS_TABLE,
            [in_("experience_id", entity_ids)],
            columns="experience_id,rating",
        )

        grouped: dict[str, list[int]] = defaultdict(list)
        requested = set(entity_ids)
        skipped = 0
        for row in rows:
            try:
                rating = decode_row(RatingRow, row, REVIEWS_TABLE)
            except RowDecodeError:
                skipped += 1
                continue
            if rating.experience_id in requested:
                grouped[rating.experience_id].append(rating.rating)
        if skipped:
            logger.warning("Skipped malformed review rows", skipped=skipped)

        fetched_at = self._now_ms()
        results: dict[str, RatingSummary] = {}
        for entity_id in entity_ids:
            summary = summarize_ratings(grouped.get(entity_id, ()))
            self._entries[entity_id] = RatingCacheEntry(
                entity_id=entity_id,
                average=summary.average,
                count=summary.count,
                fetched_at_ms=fetched_at,
            )
            results[entity_id] = summary

        logger.debug("Ratings cached", ids=len(entity_ids), rated=len(grouped))
        return results


# Global instance
ratings_cache = RatingsCache()
