"""Reviews for one experience: listing, stats, and guarded submission."""

from datetime import UTC, datetime

from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.review_domain import Booking, Review, ReviewDraft, ReviewStats
from livelocal.services.notices import NoticeCenter
from livelocal.services.remote.contract import (
    NoRowsError,
    RemoteDataService,
    RemoteServiceError,
    UniqueViolationError,
    decode_row,
    decode_rows,
)
from livelocal.services.remote.filters import Order, eq
from livelocal.services.session import AuthSession

logger = get_logger(__name__)

REVIEWS_TABLE = "reviews"
BOOKINGS_TABLE = "bookings"
REVIEW_COLUMNS = "*,profiles!reviews_guest_id_fkey(first_name,last_name,avatar_url)"
REVIEWABLE_BOOKING_STATUS = "confirmed"


class ReviewService:
    def __init__(
        self,
        remote: RemoteDataService,
        session: AuthSession,
        notices: NoticeCenter,
        experience_id: str | None = None,
    ):
        self._remote = remote
        self._session = session
        self._notices = notices
        self.experience_id = experience_id
        self.reviews: list[Review] = []
        self.stats = ReviewStats()
        self.error: str | None = None
        self.loading = False

    async def fetch_reviews(self) -> list[Review]:
        if not self.experience_id:
            return []

        self.loading = True
        self.error = None
        try:
            rows = await self._remote.select(
                REVIEWS_TABLE,
                [eq("experience_id", self.experience_id)],
                columns=REVIEW_COLUMNS,
                order=Order("created_at", ascending=False),
            )
            reviews = decode_rows(Review, rows, REVIEWS_TABLE)
        except NoRowsError:
            reviews = []
        except RemoteServiceError as e:
            logger.error("Error fetching reviews", experience_id=self.experience_id, error=str(e))
            self.error = str(e) or "Failed to fetch reviews"
            return self.reviews
        finally:
            self.loading = False

        self.reviews = reviews
        self.stats = ReviewStats.from_reviews(reviews)
        return reviews

    async def can_user_review(self, booking_id: str) -> bool:
        """A user may review their own confirmed booking once its date has passed."""
        user = self._session.get_current_user()
        if user is None:
            return False

        try:
            rows = await self._remote.select(
                BOOKINGS_TABLE,
                [eq("id", booking_id), eq("guest_id", user.id)],
                columns="id,guest_id,status,booking_date",
                limit=1,
            )
            if not rows:
                return False
            booking = decode_row(Booking, rows[0], BOOKINGS_TABLE)
        except NoRowsError:
            return False
        except RemoteServiceError as e:
            logger.error("Error checking review permission", booking_id=booking_id, error=str(e))
            return False

        booking_date = booking.booking_date
        if booking_date.tzinfo is None:
            booking_date = booking_date.replace(tzinfo=UTC)
        return booking_date < datetime.now(UTC) and booking.status == REVIEWABLE_BOOKING_STATUS

    async def _already_reviewed(self, booking_id: str, user_id: str) -> bool:
        rows = await self._remote.select(
            REVIEWS_TABLE,
            [eq("booking_id", booking_id), eq("guest_id", user_id)],
            columns="id",
            limit=1,
        )
        return bool(rows)

    async def submit_review(self, draft: ReviewDraft) -> bool:
        user = self._session.get_current_user()
        if user is None:
            self._notices.error(
                "Authentication required", "You must be logged in to submit a review"
            )
            return False

        try:
            if not await self.can_user_review(draft.booking_id):
                self._notices.error(
                    "Cannot submit review", "You can only review completed bookings that you made"
                )
                return False

            if await self._already_reviewed(draft.booking_id, user.id):
                self._notices.error(
                    "Review already exists", "You have already reviewed this experience"
                )
                return False

            await self._remote.insert(
                REVIEWS_TABLE,
                {
                    "rating": draft.rating,
                    "comment": draft.comment or None,
                    "experience_id": draft.experience_id,
                    "booking_id": draft.booking_id,
                    "guest_id": user.id,
                },
            )
        except UniqueViolationError:
            self._notices.error(
                "Review already exists", "You have already reviewed this experience"
            )
            return False
        except RemoteServiceError as e:
            logger.error("Error submitting review", booking_id=draft.booking_id, error=str(e))
            self._notices.error("Failed to submit review", str(e) or "Please try again")
            return False

        self._notices.show("Review submitted!", "Thank you for your feedback")
        if draft.experience_id == self.experience_id:
            await self.fetch_reviews()
        return True
